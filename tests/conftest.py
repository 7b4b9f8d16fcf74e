import threading
from types import SimpleNamespace

import numpy as np
import pytest

from camera_detector.config import DetectorConfig
from camera_detector.detector import DetectorHandle, DetectorSlot
from camera_detector.errors import ModelLoadError
from camera_detector.frames import Frame
from camera_detector.session import SessionController


def raw_detection(label, score, x=10, y=20, w=30, h=40, display_name=""):
    """Detection shaped like a MediaPipe ObjectDetectorResult entry."""
    return SimpleNamespace(
        bounding_box=SimpleNamespace(origin_x=x, origin_y=y, width=w, height=h),
        categories=[SimpleNamespace(index=0, score=score, category_name=label,
                                    display_name=display_name)],
    )


def raw_result(*detections):
    return SimpleNamespace(detections=list(detections))


class FakeEngine:
    def __init__(self, result=None, error=None, gate=None):
        self.result = result if result is not None else raw_result()
        self.error = error
        self.gate = gate
        self.started = threading.Event()
        self.calls = 0
        self.cleaned = False

    def infer(self, bitmap):
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.error is not None:
            raise self.error
        return self.result

    def cleanup(self):
        self.cleaned = True


class FakeFactory:
    """Builds detector handles around fake engines and records them."""

    def __init__(self, result=None, error=None, fail=False):
        self.result = result
        self.error = error
        self.fail = fail
        self.gate = None
        self.handles = []

    def __call__(self, threshold):
        if self.fail:
            if isinstance(self.fail, Exception):
                raise self.fail
            raise ModelLoadError("Model file not found: missing.tflite")
        handle = DetectorHandle(
            FakeEngine(self.result, self.error, self.gate), threshold, max_results=3
        )
        self.handles.append(handle)
        return handle


class ReleaseCounter:
    def __init__(self):
        self.count = 0

    def __call__(self, frame):
        self.count += 1


def solid_frame(bgr=(40, 120, 200), width=64, height=48, on_release=None):
    image = np.full((height, width, 3), bgr, dtype=np.uint8)
    return Frame.from_bgr(image, on_release=on_release)


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def slot(factory):
    return DetectorSlot(factory)


@pytest.fixture
def controller(slot):
    return SessionController(slot, DetectorConfig())
