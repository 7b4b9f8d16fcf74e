"""
Per-frame detection pipeline and the worker thread that drives it.
"""

import time
import logging
import threading
from enum import Enum
from typing import Callable, Dict, Optional

from .capture import FrameSlot
from .config import PipelineConfig
from .detector import DetectionSet
from .errors import DecodeError, InferenceError
from .frames import Frame, to_bitmap
from .session import SessionController

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    IDLE = "idle"
    FRAME_ACQUIRED = "frame_acquired"
    CONVERTED = "converted"
    DETECTED = "detected"
    PUBLISHED = "published"


def format_log_entry(detections: DetectionSet) -> str:
    """One ``label: score`` line per detection, using the top category."""
    lines = []
    for detection in detections:
        top = detection.top_category
        label = top.label if top is not None else "?"
        score = top.score if top is not None else 0.0
        lines.append(f"{label}: {score:.2f}")
    return "\n".join(lines)


class PipelineStats:
    """Thread-safe pipeline counters."""

    def __init__(self):
        self.processed = 0
        self.dropped = 0
        self.stale = 0
        self.skipped = 0
        self.inference_time = 0.0
        self.num_detections = 0
        self.fps = 0.0
        self._fps_count = 0
        self._fps_start = time.time()
        self._lock = threading.Lock()

    def record_processed(self, inference_time: float, num_detections: int):
        with self._lock:
            self.processed += 1
            self.inference_time = inference_time
            self.num_detections = num_detections

            self._fps_count += 1
            elapsed = time.time() - self._fps_start
            if elapsed >= 1.0:
                self.fps = self._fps_count / elapsed
                self._fps_count = 0
                self._fps_start = time.time()

    def record_dropped(self):
        with self._lock:
            self.dropped += 1

    def record_stale(self):
        with self._lock:
            self.stale += 1

    def record_skipped(self):
        with self._lock:
            self.skipped += 1

    def snapshot(self) -> Dict:
        with self._lock:
            return {
                'fps': self.fps,
                'inference_time': self.inference_time,
                'num_detections': self.num_detections,
                'processed_frames': self.processed,
                'dropped_frames': self.dropped,
                'stale_results': self.stale,
                'skipped_frames': self.skipped,
            }


class DetectionPipeline:
    """
    Runs one frame through conversion, detection and publication.

    Per-frame failures drop the frame and never stop later frames. The
    frame is released exactly once on every path.
    """

    def __init__(self, controller: SessionController, config: PipelineConfig,
                 clock: Callable[[], float] = time.time):
        self.controller = controller
        self.slot = controller.slot
        self.config = config
        self.clock = clock
        self.state = PipelineState.IDLE
        self.stats = PipelineStats()
        self._last_log_time: Optional[float] = None

    def process(self, frame: Frame) -> Optional[DetectionSet]:
        """
        Process one frame.

        Returns:
            The published detections, or None if the frame was dropped
        """
        self.state = PipelineState.FRAME_ACQUIRED
        try:
            return self._run(frame)
        finally:
            frame.release()
            self.state = PipelineState.IDLE

    def _run(self, frame: Frame) -> Optional[DetectionSet]:
        try:
            bitmap = to_bitmap(
                frame,
                quality=self.config.jpeg_quality,
                round_trip=self.config.jpeg_round_trip,
            )
        except DecodeError as e:
            self.stats.record_dropped()
            logger.warning(f"Dropped frame, conversion failed: {e}")
            return None

        self.state = PipelineState.CONVERTED
        image_size = (bitmap.shape[1], bitmap.shape[0])

        with self.slot.lease() as lease:
            if lease.handle is None:
                self.stats.record_skipped()
                return None

            start = time.perf_counter()
            try:
                detections = lease.handle.detect(bitmap)
            except InferenceError as e:
                self.stats.record_dropped()
                logger.warning(f"Dropped frame, detection failed: {e}")
                return None
            inference_time = time.perf_counter() - start
            current = lease.is_current()

        if not current:
            # Detector was rebuilt while this frame was in flight
            self.stats.record_stale()
            logger.debug("Discarded detections from a retired detector")
            return None

        self.state = PipelineState.DETECTED
        self.controller.publish(detections, image_size)
        self._maybe_log(detections)
        self.state = PipelineState.PUBLISHED

        self.stats.record_processed(inference_time, len(detections))
        return detections

    def _maybe_log(self, detections: DetectionSet):
        now = self.clock()
        if (self._last_log_time is not None
                and (now - self._last_log_time) * 1000 <= self.config.log_interval_ms):
            return
        self._last_log_time = now
        self.controller.append_log(format_log_entry(detections))


class DetectionWorker:
    """Background thread feeding frames from the slot to the pipeline."""

    def __init__(self, pipeline: DetectionPipeline, slot: FrameSlot,
                 poll_interval: float = 0.5, stats_interval: float = 30.0):
        self.pipeline = pipeline
        self.slot = slot
        self.poll_interval = poll_interval
        self.stats_interval = stats_interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self._thread is not None:
            logger.warning("Detection worker already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="detection", daemon=True)
        self._thread.start()
        logger.info("Detection worker started")

    def _run(self):
        last_stats_log_time = time.time()

        while not self._stop_event.is_set():
            frame = self.slot.get(timeout=self.poll_interval)
            if frame is not None:
                try:
                    self.pipeline.process(frame)
                except Exception as e:
                    self.pipeline.stats.record_dropped()
                    logger.error(f"Unexpected pipeline error: {e}", exc_info=True)

            if time.time() - last_stats_log_time >= self.stats_interval:
                stats = self.pipeline.stats.snapshot()
                logger.info(
                    f"Stats: FPS={stats['fps']:.1f}, "
                    f"Inference={stats['inference_time']*1000:.1f}ms, "
                    f"Detections={stats['num_detections']}, "
                    f"Dropped={stats['dropped_frames']}"
                )
                last_stats_log_time = time.time()

            if self.slot.closed:
                break

    def stop(self, timeout: float = 5.0):
        """Stop the worker; the pending frame, if any, is released."""
        self._stop_event.set()
        self.slot.close()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Detection worker stopped")
