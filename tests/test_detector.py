import numpy as np
import pytest

from camera_detector.detector import (
    BoundingBox, DetectorHandle, DetectorSlot, configure, from_result,
)
from camera_detector.errors import InferenceError, ModelLoadError

from conftest import FakeEngine, FakeFactory, raw_detection, raw_result


BITMAP = np.zeros((48, 64, 3), dtype=np.uint8)


def test_from_result_converts_boxes_and_categories():
    result = raw_result(raw_detection("cup", 0.8, x=10, y=20, w=30, h=40))

    (detection,) = from_result(result, score_threshold=0.5, max_results=3)

    assert detection.bounding_box == BoundingBox(10, 20, 40, 60)
    assert detection.top_category.label == "cup"
    assert detection.score == pytest.approx(0.8)


def test_from_result_sorts_filters_and_truncates():
    result = raw_result(
        raw_detection("a", 0.65),
        raw_detection("b", 0.95),
        raw_detection("c", 0.4),
        raw_detection("d", 0.7),
        raw_detection("e", 0.9),
    )

    detections = from_result(result, score_threshold=0.6, max_results=3)

    assert [d.top_category.label for d in detections] == ["b", "e", "d"]
    assert all(d.score >= 0.6 for d in detections)


def test_from_result_falls_back_to_display_name():
    result = raw_result(raw_detection("", 0.9, display_name="Tasse"))
    (detection,) = from_result(result, 0.5, 3)
    assert detection.top_category.label == "Tasse"


def test_from_result_handles_empty_result():
    assert from_result(raw_result(), 0.5, 3) == ()


def test_handle_wraps_engine_failure():
    handle = DetectorHandle(FakeEngine(error=RuntimeError("boom")), 0.5, 3)
    with pytest.raises(InferenceError):
        handle.detect(BITMAP)


def test_closed_handle_refuses_detection():
    engine = FakeEngine()
    handle = DetectorHandle(engine, 0.5, 3)
    handle.close()
    handle.close()

    assert engine.cleaned
    with pytest.raises(InferenceError):
        handle.detect(BITMAP)


def test_configure_missing_model_raises(tmp_path):
    with pytest.raises(ModelLoadError):
        configure(str(tmp_path / "missing.tflite"), 0.6)


def test_rebuild_swaps_and_closes_old_handle(slot, factory):
    first = slot.rebuild(0.6)
    second = slot.rebuild(0.65)

    assert slot.handle is second
    assert first.closed
    assert not second.closed
    assert second.score_threshold == pytest.approx(0.65)
    assert slot.generation == 2


def test_leased_handle_is_closed_after_lease_ends(slot):
    first = slot.rebuild(0.6)

    with slot.lease() as lease:
        assert lease.handle is first
        assert lease.is_current()
        slot.rebuild(0.65)
        assert not first.closed
        assert not lease.is_current()

    assert first.closed


def test_failed_rebuild_empties_slot_and_records_error(factory):
    slot = DetectorSlot(factory)
    first = slot.rebuild(0.6)
    factory.fail = True

    with pytest.raises(ModelLoadError):
        slot.rebuild(0.65)

    assert slot.handle is None
    assert first.closed
    assert "missing.tflite" in slot.error

    with slot.lease() as lease:
        assert lease.handle is None
        assert not lease.is_current()


def test_successful_rebuild_clears_error(factory):
    slot = DetectorSlot(factory)
    factory.fail = True
    with pytest.raises(ModelLoadError):
        slot.rebuild(0.6)

    factory.fail = False
    slot.rebuild(0.6)
    assert slot.error is None


def test_close_retires_current_handle(slot):
    handle = slot.rebuild(0.6)
    slot.close()
    assert slot.handle is None
    assert handle.closed


def test_handles_keep_fixed_threshold():
    factory = FakeFactory(result=raw_result(raw_detection("cup", 0.62)))
    slot = DetectorSlot(factory)

    assert len(slot.rebuild(0.6).detect(BITMAP)) == 1
    assert slot.rebuild(0.65).detect(BITMAP) == ()


def test_unexpected_construction_failure_becomes_model_load_error(factory):
    slot = DetectorSlot(factory)
    first = slot.rebuild(0.6)
    factory.fail = RuntimeError("mediapipe import crashed")

    with pytest.raises(ModelLoadError, match="mediapipe import crashed"):
        slot.rebuild(0.65)

    assert slot.handle is None
    assert first.closed
    assert "mediapipe import crashed" in slot.error
