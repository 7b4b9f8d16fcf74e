"""
Camera frame buffers and conversion to RGB bitmaps.
"""

import cv2
import threading
import numpy as np
from typing import Callable, Optional, Tuple

from .errors import DecodeError


class Frame:
    """
    Planar YUV 4:2:0 camera frame.

    Chroma planes are either separate quarter-size planes (pixel stride 1,
    I420 layout) or interleaved views into one VU buffer (pixel stride 2,
    as delivered by semi-planar camera pipelines). The frame must be
    released exactly once after use; ``release`` is safe to call again.
    """

    def __init__(self, y: np.ndarray, u: np.ndarray, v: np.ndarray,
                 width: int, height: int, pixel_stride: int = 1,
                 on_release: Optional[Callable[["Frame"], None]] = None):
        self.y = y
        self.u = u
        self.v = v
        self.width = width
        self.height = height
        self.pixel_stride = pixel_stride
        self._on_release = on_release
        self._released = False
        self._lock = threading.Lock()

    @classmethod
    def from_bgr(cls, image: np.ndarray,
                 on_release: Optional[Callable[["Frame"], None]] = None) -> "Frame":
        """
        Build an I420 frame from a BGR camera image.

        Args:
            image: BGR image with even width and height
            on_release: Called once when the frame is released

        Returns:
            Frame with separate Y, U and V planes
        """
        height, width = image.shape[:2]
        if width % 2 or height % 2:
            raise ValueError(f"Frame dimensions must be even, got {width}x{height}")

        flat = cv2.cvtColor(image, cv2.COLOR_BGR2YUV_I420).ravel()
        luma = width * height
        chroma = luma // 4

        y = flat[:luma].reshape(height, width)
        u = flat[luma:luma + chroma].reshape(height // 2, width // 2)
        v = flat[luma + chroma:luma + 2 * chroma].reshape(height // 2, width // 2)
        return cls(y, u, v, width, height, pixel_stride=1, on_release=on_release)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def released(self) -> bool:
        return self._released

    def release(self):
        """Return the buffer to its producer."""
        with self._lock:
            if self._released:
                return
            self._released = True

        self.y = self.u = self.v = None
        if self._on_release is not None:
            self._on_release(self)


def to_nv21(frame: Frame) -> np.ndarray:
    """
    Pack frame planes into an NV21 buffer (luma, then interleaved V/U).

    Args:
        frame: Unreleased frame

    Returns:
        uint8 array of shape (height * 3 / 2, width)

    Raises:
        DecodeError: If the planes do not match the declared dimensions
    """
    if frame.released:
        raise DecodeError("Frame has already been released")

    width, height = frame.width, frame.height
    if width <= 0 or height <= 0 or width % 2 or height % 2:
        raise DecodeError(f"Invalid frame dimensions {width}x{height}")

    luma = width * height
    chroma = luma // 4

    y = np.ascontiguousarray(frame.y, dtype=np.uint8).ravel()
    u = np.ascontiguousarray(frame.u, dtype=np.uint8).ravel()
    v = np.ascontiguousarray(frame.v, dtype=np.uint8).ravel()

    if y.size < luma:
        raise DecodeError(f"Luma plane too small: {y.size} < {luma}")

    if frame.pixel_stride == 1:
        if u.size < chroma or v.size < chroma:
            raise DecodeError("Chroma planes too small for frame dimensions")
        vu = np.empty(chroma * 2, dtype=np.uint8)
        vu[0::2] = v[:chroma]
        vu[1::2] = u[:chroma]
    elif frame.pixel_stride == 2:
        # V plane is VUVU...V; its missing final U is the last byte of the U plane
        if v.size < chroma * 2 - 1 or u.size < 1:
            raise DecodeError("Interleaved chroma planes too small for frame dimensions")
        vu = np.concatenate((v[:chroma * 2 - 1], u[-1:]))
    else:
        raise DecodeError(f"Unsupported chroma pixel stride {frame.pixel_stride}")

    return np.concatenate((y[:luma], vu)).reshape(height * 3 // 2, width)


def decode_jpeg(data) -> np.ndarray:
    """
    Decode a JPEG buffer into a BGR image.

    Raises:
        DecodeError: If the buffer is empty or malformed
    """
    buffer = np.frombuffer(bytes(data), dtype=np.uint8)
    if buffer.size == 0:
        raise DecodeError("Empty JPEG buffer")

    try:
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise DecodeError(f"JPEG decode failed: {e}") from e

    if image is None:
        raise DecodeError("Malformed JPEG buffer")
    return image


def to_bitmap(frame: Frame, quality: int = 100, round_trip: bool = True) -> np.ndarray:
    """
    Convert a camera frame into an RGB bitmap.

    The NV21 buffer is converted to BGR, encoded as JPEG at the given
    quality and decoded again, matching what a YUV-to-JPEG camera bridge
    produces. With ``round_trip`` disabled the colour conversion is used
    directly.

    Args:
        frame: Frame to convert
        quality: JPEG quality for the intermediate encoding
        round_trip: Whether to go through the JPEG encoding

    Returns:
        RGB uint8 array of shape (height, width, 3)

    Raises:
        DecodeError: If conversion, encoding or decoding fails
    """
    nv21 = to_nv21(frame)

    try:
        bgr = cv2.cvtColor(nv21, cv2.COLOR_YUV2BGR_NV21)
    except cv2.error as e:
        raise DecodeError(f"YUV conversion failed: {e}") from e

    if round_trip:
        ok, encoded = cv2.imencode('.jpg', bgr, [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ok:
            raise DecodeError("JPEG encoding failed")
        bgr = decode_jpeg(encoded.tobytes())

    if bgr.shape[:2] != (frame.height, frame.width):
        raise DecodeError(
            f"Decoded size {bgr.shape[1]}x{bgr.shape[0]} does not match "
            f"frame size {frame.width}x{frame.height}"
        )

    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
