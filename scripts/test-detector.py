#!/usr/bin/env python3
"""
Test script to run the detector on a single image or camera frame.
"""

import os
import sys
import cv2
import logging

# Add src to path for testing before installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from camera_detector.config import OverlayConfig
from camera_detector.detector import configure
from camera_detector.errors import DetectorError
from camera_detector.overlay import OverlayRenderer, composite, format_label

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main():
    model_path = sys.argv[1] if len(sys.argv) > 1 else "models/common_detect.tflite"
    source = sys.argv[2] if len(sys.argv) > 2 else "0"
    threshold = float(sys.argv[3]) if len(sys.argv) > 3 else 0.6

    try:
        handle = configure(model_path, threshold)
    except DetectorError as e:
        logger.error(f"Failed to load detector: {e}")
        return 1

    if os.path.isfile(source):
        image = cv2.imread(source)
    else:
        cap = cv2.VideoCapture(int(source) if source.isdigit() else source)
        ret, image = cap.read()
        cap.release()
        if not ret:
            image = None

    if image is None:
        logger.error(f"Failed to read image from {source}")
        handle.close()
        return 1

    logger.info(f"Input image: {image.shape}, dtype: {image.dtype}")

    try:
        detections = handle.detect(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
    except DetectorError as e:
        logger.error(f"Detection failed: {e}")
        handle.close()
        return 1

    logger.info(f"{len(detections)} detection(s) at threshold {threshold:.2f}")
    for detection in detections:
        box = detection.bounding_box
        logger.info(
            f"  {format_label(detection)} "
            f"[{box.left:.0f}, {box.top:.0f}, {box.right:.0f}, {box.bottom:.0f}]"
        )

    size = (image.shape[1], image.shape[0])
    layer = OverlayRenderer(OverlayConfig()).render(detections, size, size)
    cv2.imwrite("/tmp/test_detections.jpg", composite(image, layer))
    logger.info("Saved annotated image to /tmp/test_detections.jpg")

    handle.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
