"""
Camera capture using OpenCV, delivering frames through a keep-latest slot.
"""

import cv2
import logging
import threading
import numpy as np
from typing import Callable, Optional
from .config import CameraConfig
from .frames import Frame


logger = logging.getLogger(__name__)


class FrameSlot:
    """
    Single-slot frame channel with keep-latest semantics.

    A frame put while another is still waiting replaces it; the replaced
    frame is released and counted as dropped.
    """

    def __init__(self):
        self._frame: Optional[Frame] = None
        self._closed = False
        self._cond = threading.Condition()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, frame: Frame) -> bool:
        """
        Offer a frame to the consumer.

        Returns:
            False if the slot is closed (the frame is released)
        """
        with self._cond:
            if self._closed:
                stale = frame
            else:
                stale = self._frame
                self._frame = frame
                if stale is not None:
                    self.dropped += 1
                self._cond.notify()

        if stale is not None:
            stale.release()
        return stale is not frame

    def get(self, timeout: Optional[float] = None) -> Optional[Frame]:
        """
        Take the newest frame, waiting up to timeout seconds.

        Returns:
            Frame, or None on timeout or when the slot is closed
        """
        with self._cond:
            self._cond.wait_for(lambda: self._frame is not None or self._closed, timeout)
            frame, self._frame = self._frame, None
            return frame

    def close(self):
        """Release the pending frame and wake any waiting consumer."""
        with self._cond:
            self._closed = True
            stale, self._frame = self._frame, None
            self._cond.notify_all()

        if stale is not None:
            stale.release()


class CameraStream:
    """
    Camera producer with automatic reconnection.

    A background thread reads BGR images, hands each one to the preview
    callback and pushes a planar Frame into the slot.
    """

    def __init__(self, config: CameraConfig, slot: FrameSlot,
                 on_preview: Optional[Callable[[np.ndarray], None]] = None):
        """
        Initialize camera stream.

        Args:
            config: Camera configuration
            slot: Channel receiving frames for detection
            on_preview: Receives every captured BGR image
        """
        self.config = config
        self.slot = slot
        self.on_preview = on_preview
        self.cap: Optional[cv2.VideoCapture] = None
        self.is_opened = False
        self.frame_count = 0
        self.outstanding = 0
        self._count_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def open(self) -> bool:
        """
        Open the capture device.

        Returns:
            True if successful, False otherwise
        """
        source = self.config.source
        try:
            logger.info(f"Opening camera: {source}")
            self.cap = cv2.VideoCapture(source)

            if not self.cap.isOpened():
                logger.error(f"Failed to open {source}")
                return False

            self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
            self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
            self.cap.set(cv2.CAP_PROP_FPS, self.config.fps)

            actual_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            actual_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
            actual_fps = int(self.cap.get(cv2.CAP_PROP_FPS))

            logger.info(
                f"Camera opened: {actual_width}x{actual_height} @ {actual_fps} FPS"
            )

            self.is_opened = True
            return True

        except Exception as e:
            logger.error(f"Error opening camera: {e}")
            self.is_opened = False
            return False

    def read(self) -> Optional[np.ndarray]:
        """
        Read one image from the camera.

        Returns:
            BGR image, or None if failed
        """
        if not self.is_opened or self.cap is None:
            return None

        try:
            ret, image = self.cap.read()
        except Exception as e:
            logger.error(f"Error reading frame: {e}")
            self.is_opened = False
            return None

        if not ret or image is None:
            logger.warning("Failed to read frame from camera")
            self.is_opened = False
            return None

        self.frame_count += 1
        return image

    def emit(self, image: np.ndarray):
        """Deliver one captured image to the preview and the detection slot."""
        if self.on_preview is not None:
            self.on_preview(image)

        # Planar frames need even dimensions
        height, width = image.shape[:2]
        image = np.ascontiguousarray(image[:height - height % 2, :width - width % 2])

        with self._count_lock:
            self.outstanding += 1
        self.slot.put(Frame.from_bgr(image, on_release=self._on_release))

    def _on_release(self, frame: Frame):
        with self._count_lock:
            self.outstanding -= 1

    def start(self):
        """Start the capture thread."""
        if self._thread is not None:
            logger.warning("Camera stream already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="camera", daemon=True)
        self._thread.start()

    def _run(self):
        if not self.is_opened and not self.open():
            logger.error("Failed to open camera initially, will retry...")

        while not self._stop_event.is_set():
            if not self.is_opened:
                logger.warning("Camera not available, attempting to reconnect...")
                self.reconnect()
                continue

            image = self.read()
            if image is None:
                continue

            self.emit(image)

    def reconnect(self) -> bool:
        """
        Try to reconnect to the camera after the configured interval.

        Returns:
            True if reconnected successfully
        """
        self.release()
        if self._stop_event.wait(self.config.reconnect_interval):
            return False
        return self.open()

    def release(self):
        """Release capture resources."""
        if self.cap is not None:
            logger.info("Releasing camera")
            self.cap.release()
            self.cap = None
        self.is_opened = False

    def stop(self, timeout: float = 5.0):
        """Stop the capture thread and release the camera."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.release()
