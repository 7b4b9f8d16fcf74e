#!/usr/bin/env python3
"""
Camera test utility to verify camera capture and frame conversion.
"""

import os
import sys
import cv2
import numpy as np

# Add src to path for testing before installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from camera_detector.errors import DecodeError
from camera_detector.frames import Frame, to_bitmap


def test_camera(device="0"):
    """
    Test camera connectivity and the YUV frame conversion.

    Args:
        device: Camera index, device path or video file
    """
    print("=" * 70)
    print("Camera Detector - Camera Test Utility")
    print("=" * 70)
    print()

    source = int(device) if device.isdigit() else device

    # Test 1: Open camera
    print(f"[1/4] Opening camera: {source}")
    cap = cv2.VideoCapture(source)

    if not cap.isOpened():
        print("  ✗ Failed to open camera")
        return False

    print("  ✓ Camera opened successfully")
    print()

    # Test 2: Get camera properties
    print("[2/4] Querying camera properties...")
    width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
    height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    fps = int(cap.get(cv2.CAP_PROP_FPS))
    backend = cap.getBackendName()

    print(f"  Resolution: {width}x{height}")
    print(f"  FPS: {fps}")
    print(f"  Backend: {backend}")
    print()

    # Test 3: Capture a frame
    print("[3/4] Capturing test frame...")
    ret, image = cap.read()
    cap.release()

    if not ret or image is None:
        print("  ✗ Failed to capture frame")
        return False

    print(f"  ✓ Frame captured: {image.shape}, {image.dtype}")
    print()

    # Test 4: Convert through the YUV/JPEG path
    print("[4/4] Converting frame to RGB bitmap...")
    h, w = image.shape[:2]
    image = image[:h - h % 2, :w - w % 2]
    frame = Frame.from_bgr(image)

    try:
        bitmap = to_bitmap(frame)
    except DecodeError as e:
        print(f"  ✗ Conversion failed: {e}")
        return False
    finally:
        frame.release()

    diff = np.abs(cv2.cvtColor(bitmap, cv2.COLOR_RGB2BGR).astype(int) - image.astype(int))
    print(f"  ✓ Bitmap: {bitmap.shape}, mean abs difference {diff.mean():.2f}")

    output_path = "test_frame.jpg"
    cv2.imwrite(output_path, cv2.cvtColor(bitmap, cv2.COLOR_RGB2BGR))
    print(f"  ✓ Converted frame saved to: {output_path}")
    print()

    print("=" * 70)
    print("✓ All tests passed successfully!")
    print()
    return True


if __name__ == "__main__":
    device = "0"
    if len(sys.argv) > 1:
        device = sys.argv[1]

    success = test_camera(device)
    sys.exit(0 if success else 1)
