"""
Session state: score threshold, log history and the published detections.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Tuple

from .config import DetectorConfig
from .detector import DetectionSet, DetectorSlot
from .errors import ModelLoadError

logger = logging.getLogger(__name__)


INITIAL_LOG_ENTRY = "Starting..."


@dataclass(frozen=True)
class SessionState:
    """Consistent view of the published session state."""
    threshold: float
    detections: DetectionSet
    image_size: Tuple[int, int]
    model_error: Optional[str]


class SessionController:
    """
    Owns the adjustable threshold, the log history and the latest
    detection set, and rebuilds the detector when the threshold changes.

    Threshold changes are serialized so rebuilds are applied in the order
    the controls were used.
    """

    def __init__(self, slot: DetectorSlot, config: DetectorConfig, log_capacity: int = 50):
        self.slot = slot
        self.step = config.threshold_step
        self.min_threshold = config.min_threshold
        self.max_threshold = config.max_threshold
        self._threshold = self._clamp(config.initial_threshold)
        self._log: Deque[str] = deque([INITIAL_LOG_ENTRY], maxlen=log_capacity)
        self._detections: DetectionSet = ()
        self._image_size: Tuple[int, int] = (1, 1)
        self._lock = threading.Lock()
        self._control_lock = threading.Lock()

    @property
    def threshold(self) -> float:
        with self._lock:
            return self._threshold

    @property
    def model_error(self) -> Optional[str]:
        return self.slot.error

    def start(self) -> bool:
        """
        Build the detector for the initial threshold.

        Returns:
            True if the model loaded
        """
        with self._control_lock:
            return self._rebuild(self.threshold)

    def increment(self) -> float:
        """Raise the threshold by one step."""
        return self._adjust(self.step)

    def decrement(self) -> float:
        """Lower the threshold by one step."""
        return self._adjust(-self.step)

    def _clamp(self, value: float) -> float:
        # Drop float accumulation error from repeated steps
        return round(min(max(value, self.min_threshold), self.max_threshold), 10)

    def _adjust(self, delta: float) -> float:
        with self._control_lock:
            with self._lock:
                threshold = self._clamp(self._threshold + delta)
                if threshold == self._threshold:
                    return threshold
                self._threshold = threshold

            logger.info(f"Score threshold set to {threshold:g}")
            self._rebuild(threshold)
            return threshold

    def _rebuild(self, threshold: float) -> bool:
        try:
            self.slot.rebuild(threshold)
            return True
        except ModelLoadError as e:
            logger.error(f"Detector unavailable, detection halted: {e}")
            with self._lock:
                self._detections = ()
            return False

    def publish(self, detections: DetectionSet, image_size: Tuple[int, int]):
        """Replace the current detection set."""
        with self._lock:
            self._detections = tuple(detections)
            self._image_size = image_size

    def snapshot(self) -> SessionState:
        with self._lock:
            return SessionState(
                threshold=self._threshold,
                detections=self._detections,
                image_size=self._image_size,
                model_error=self.slot.error,
            )

    def append_log(self, entry: str):
        """Prepend a log entry, evicting the oldest beyond capacity."""
        with self._lock:
            self._log.appendleft(entry)

    def clear_log(self):
        with self._lock:
            self._log.clear()

    def logs(self) -> List[str]:
        """Log history, newest first."""
        with self._lock:
            return list(self._log)
