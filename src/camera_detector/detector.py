"""
Object detector adapter and the swappable detector handle slot.
"""

import logging
import threading
import numpy as np
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, Tuple

from .errors import InferenceError, ModelLoadError
from .inference import MediaPipeInference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Category:
    label: str
    score: float


@dataclass(frozen=True)
class BoundingBox:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top


@dataclass(frozen=True)
class Detection:
    """One model output: a box plus label/score pairs, best first."""
    bounding_box: BoundingBox
    categories: Tuple[Category, ...] = ()

    @property
    def top_category(self) -> Optional[Category]:
        return self.categories[0] if self.categories else None

    @property
    def score(self) -> float:
        top = self.top_category
        return top.score if top is not None else 0.0


DetectionSet = Tuple[Detection, ...]


def from_result(result, score_threshold: float, max_results: int) -> DetectionSet:
    """
    Convert a MediaPipe ObjectDetectorResult into detections.

    Detections are sorted by descending top score, filtered to the
    threshold and truncated to ``max_results``.
    """
    detections = []
    for raw in getattr(result, "detections", None) or []:
        box = raw.bounding_box
        categories = sorted(
            (
                Category(
                    label=c.category_name or c.display_name or "?",
                    score=float(c.score),
                )
                for c in raw.categories or []
            ),
            key=lambda c: c.score,
            reverse=True,
        )
        detections.append(Detection(
            bounding_box=BoundingBox(
                left=float(box.origin_x),
                top=float(box.origin_y),
                right=float(box.origin_x + box.width),
                bottom=float(box.origin_y + box.height),
            ),
            categories=tuple(categories),
        ))

    detections = [d for d in detections if d.score >= score_threshold]
    detections.sort(key=lambda d: d.score, reverse=True)
    return tuple(detections[:max_results])


class DetectorHandle:
    """A loaded detector bound to one score threshold."""

    def __init__(self, engine, score_threshold: float, max_results: int):
        self.engine = engine
        self.score_threshold = score_threshold
        self.max_results = max_results
        self.closed = False

    def detect(self, bitmap: np.ndarray) -> DetectionSet:
        """
        Detect objects in an RGB bitmap.

        Raises:
            InferenceError: If the engine fails or the handle is closed
        """
        if self.closed:
            raise InferenceError("Detector handle is closed")

        try:
            result = self.engine.infer(bitmap)
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceError(f"Detection failed: {e}") from e

        return from_result(result, self.score_threshold, self.max_results)

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.engine.cleanup()
        logger.debug(f"Closed detector handle (threshold={self.score_threshold:.2f})")


def configure(model_path: str, threshold: float, max_results: int = 3) -> DetectorHandle:
    """
    Load the detection model with a fixed result cap and score threshold.

    Raises:
        ModelLoadError: If the model is missing or incompatible
    """
    engine = MediaPipeInference(model_path, max_results, threshold)
    engine.initialize()
    return DetectorHandle(engine, threshold, max_results)


class Lease:
    """Use of the slot's handle for one detection."""

    def __init__(self, slot: "DetectorSlot", handle: Optional[DetectorHandle], generation: int):
        self.slot = slot
        self.handle = handle
        self.generation = generation

    def is_current(self) -> bool:
        """Whether the handle is still the slot's current handle."""
        return self.slot.is_current(self.generation)


class DetectorSlot:
    """
    Holds the current detector handle.

    Rebuilding swaps a newly constructed handle in and retires the old
    one. Retired handles are closed once their last lease ends, so a
    detection running on the old handle completes undisturbed.
    """

    def __init__(self, factory: Callable[[float], DetectorHandle]):
        self.factory = factory
        self.error: Optional[str] = None
        self._handle: Optional[DetectorHandle] = None
        self._generation = 0
        self._leases: Dict[DetectorHandle, int] = {}
        self._retired = set()
        self._lock = threading.Lock()

    @property
    def handle(self) -> Optional[DetectorHandle]:
        with self._lock:
            return self._handle

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def rebuild(self, threshold: float) -> DetectorHandle:
        """
        Construct a handle for the threshold and make it current.

        Raises:
            ModelLoadError: If construction fails; the slot is left empty
        """
        try:
            handle = self.factory(threshold)
        except Exception as e:
            error = e if isinstance(e, ModelLoadError) else ModelLoadError(
                f"Failed to build detector: {e}"
            )
            with self._lock:
                stale = self._swap(None)
                self.error = str(error)
            self._close(stale)
            if error is e:
                raise
            raise error from e

        with self._lock:
            stale = self._swap(handle)
            self.error = None
        self._close(stale)

        logger.info(f"Detector ready (threshold={threshold:.2f})")
        return handle

    def _swap(self, handle: Optional[DetectorHandle]) -> Optional[DetectorHandle]:
        # Lock must be held. Returns the old handle if it can be closed now.
        old = self._handle
        self._handle = handle
        self._generation += 1
        if old is None:
            return None
        if self._leases.get(old, 0) > 0:
            self._retired.add(old)
            return None
        return old

    @staticmethod
    def _close(handle: Optional[DetectorHandle]):
        if handle is None:
            return
        try:
            handle.close()
        except Exception as e:
            logger.warning(f"Failed to close detector handle: {e}")

    @contextmanager
    def lease(self) -> Iterator[Lease]:
        """Borrow the current handle (possibly None) for one detection."""
        with self._lock:
            handle = self._handle
            generation = self._generation
            if handle is not None:
                self._leases[handle] = self._leases.get(handle, 0) + 1

        try:
            yield Lease(self, handle, generation)
        finally:
            if handle is not None:
                self._return(handle)

    def _return(self, handle: DetectorHandle):
        stale = None
        with self._lock:
            count = self._leases[handle] - 1
            if count > 0:
                self._leases[handle] = count
            else:
                del self._leases[handle]
                if handle in self._retired:
                    self._retired.discard(handle)
                    stale = handle
        self._close(stale)

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return self._handle is not None and generation == self._generation

    def close(self):
        """Retire the current handle; it is closed once no lease holds it."""
        with self._lock:
            stale = self._swap(None)
        self._close(stale)
