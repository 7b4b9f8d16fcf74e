import random

import pytest

from camera_detector.config import DetectorConfig
from camera_detector.detector import BoundingBox, Category, Detection, DetectorSlot
from camera_detector.session import INITIAL_LOG_ENTRY, SessionController

from conftest import FakeFactory


def make_controller(factory=None, threshold=0.6, capacity=50):
    factory = factory or FakeFactory()
    slot = DetectorSlot(factory)
    controller = SessionController(
        slot, DetectorConfig(initial_threshold=threshold), log_capacity=capacity
    )
    return controller, factory


def test_increment_clamps_at_upper_bound():
    controller, _ = make_controller(threshold=0.9)
    assert controller.increment() == pytest.approx(0.95)
    assert controller.increment() == pytest.approx(1.0)
    assert controller.increment() == pytest.approx(1.0)


def test_decrement_clamps_at_lower_bound():
    controller, _ = make_controller(threshold=0.2)
    assert controller.decrement() == pytest.approx(0.15)
    assert controller.decrement() == pytest.approx(0.1)
    assert controller.decrement() == pytest.approx(0.1)


@pytest.mark.parametrize("start", [round(0.1 + 0.05 * i, 2) for i in range(19)])
def test_random_steps_stay_in_bounds(start):
    controller, _ = make_controller(threshold=start)
    rng = random.Random(start)

    for _ in range(200):
        value = controller.increment() if rng.random() < 0.5 else controller.decrement()
        assert 0.1 <= value <= 1.0
        # Always a multiple of the step, no float drift
        assert round(value * 20) == pytest.approx(value * 20)


def test_threshold_change_rebuilds_detector():
    controller, factory = make_controller()
    controller.start()

    controller.increment()

    assert len(factory.handles) == 2
    assert controller.slot.handle.score_threshold == pytest.approx(0.65)
    assert factory.handles[0].closed


def test_clamped_step_does_not_rebuild():
    controller, factory = make_controller(threshold=1.0)
    controller.start()

    controller.increment()

    assert len(factory.handles) == 1


def test_start_reports_model_load_failure():
    controller, factory = make_controller(factory=FakeFactory(fail=True))

    assert controller.start() is False
    assert "missing.tflite" in controller.model_error
    assert controller.snapshot().model_error == controller.model_error


def test_failed_rebuild_clears_published_detections():
    controller, factory = make_controller()
    controller.start()
    controller.publish((Detection(BoundingBox(0, 0, 1, 1), (Category("cup", 0.9),)),), (64, 48))

    factory.fail = True
    controller.increment()

    state = controller.snapshot()
    assert state.detections == ()
    assert state.model_error is not None
    # Threshold change is kept even though the model did not load
    assert state.threshold == pytest.approx(0.65)


def test_log_history_starts_with_initial_entry():
    controller, _ = make_controller()
    assert controller.logs() == [INITIAL_LOG_ENTRY]


def test_log_history_is_bounded_newest_first():
    controller, _ = make_controller()

    for i in range(51):
        controller.append_log(f"entry {i}")

    logs = controller.logs()
    assert len(logs) == 50
    assert logs[0] == "entry 50"
    assert logs[-1] == "entry 1"
    assert "entry 0" not in logs


def test_clear_log_empties_history():
    controller, _ = make_controller()
    controller.append_log("cup: 0.91")
    controller.clear_log()
    assert controller.logs() == []


def test_publish_replaces_previous_set():
    controller, _ = make_controller()
    first = (Detection(BoundingBox(0, 0, 1, 1), (Category("cup", 0.9),)),)
    second = (Detection(BoundingBox(2, 2, 3, 3), (Category("book", 0.7),)),)

    controller.publish(first, (64, 48))
    controller.publish(second, (32, 24))

    state = controller.snapshot()
    assert state.detections == second
    assert state.image_size == (32, 24)


def test_small_step_still_changes_threshold():
    slot = DetectorSlot(FakeFactory())
    controller = SessionController(slot, DetectorConfig(threshold_step=0.004))

    assert controller.increment() == pytest.approx(0.604)
    assert controller.decrement() == pytest.approx(0.6)
    assert controller.decrement() == pytest.approx(0.596)


def test_step_values_are_kept_exactly():
    factory = FakeFactory()
    controller = SessionController(DetectorSlot(factory), DetectorConfig(threshold_step=0.025))

    values = [controller.increment() for _ in range(4)]

    assert values == [0.625, 0.65, 0.675, 0.7]
    assert factory.handles[-1].score_threshold == 0.7


def test_start_reports_unexpected_construction_failure():
    controller, _ = make_controller(factory=FakeFactory(fail=RuntimeError("mediapipe import crashed")))

    assert controller.start() is False
    assert "mediapipe import crashed" in controller.model_error


def test_unexpected_failure_on_threshold_change_halts_detection():
    controller, factory = make_controller()
    controller.start()

    factory.fail = RuntimeError("mediapipe import crashed")
    assert controller.increment() == pytest.approx(0.65)

    assert controller.slot.handle is None
    assert "mediapipe import crashed" in controller.model_error
