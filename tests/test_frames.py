import numpy as np
import pytest

from camera_detector.errors import DecodeError
from camera_detector.frames import Frame, decode_jpeg, to_bitmap, to_nv21

from conftest import ReleaseCounter, solid_frame


def test_solid_color_round_trip_within_tolerance():
    frame = solid_frame(bgr=(40, 120, 200), width=64, height=48)
    bitmap = to_bitmap(frame)

    assert bitmap.shape == (48, 64, 3)
    assert bitmap.dtype == np.uint8
    # Bitmap is RGB
    diff = np.abs(bitmap.astype(int) - np.array([200, 120, 40]))
    assert diff.max() <= 10


def test_direct_conversion_without_jpeg():
    frame = solid_frame(bgr=(200, 30, 90), width=32, height=32)
    bitmap = to_bitmap(frame, round_trip=False)

    diff = np.abs(bitmap.astype(int) - np.array([90, 30, 200]))
    assert diff.max() <= 6


def test_nv21_interleaves_separate_chroma_planes():
    y = np.arange(8, dtype=np.uint8).reshape(2, 4)
    u = np.array([[10, 11]], dtype=np.uint8)
    v = np.array([[20, 21]], dtype=np.uint8)
    frame = Frame(y, u, v, width=4, height=2)

    nv21 = to_nv21(frame)

    assert nv21.shape == (3, 4)
    assert nv21.ravel().tolist() == [0, 1, 2, 3, 4, 5, 6, 7, 20, 10, 21, 11]


def test_nv21_from_interleaved_chroma_views():
    y = np.arange(8, dtype=np.uint8)
    vu = np.array([20, 10, 21, 11], dtype=np.uint8)
    # Semi-planar layout: V view starts at the first byte, U view one later
    frame = Frame(y, u=vu[1:], v=vu[:-1], width=4, height=2, pixel_stride=2)

    assert to_nv21(frame).ravel().tolist() == [0, 1, 2, 3, 4, 5, 6, 7, 20, 10, 21, 11]


def test_nv21_rejects_short_planes():
    y = np.zeros((2, 4), dtype=np.uint8)
    frame = Frame(y, np.zeros(1, np.uint8), np.zeros(1, np.uint8), width=4, height=2)
    with pytest.raises(DecodeError):
        to_nv21(frame)


def test_nv21_rejects_odd_dimensions():
    frame = Frame(np.zeros(15, np.uint8), np.zeros(4, np.uint8), np.zeros(4, np.uint8),
                  width=5, height=3)
    with pytest.raises(DecodeError):
        to_bitmap(frame)


def test_nv21_rejects_unknown_pixel_stride():
    frame = solid_frame(width=4, height=2)
    frame.pixel_stride = 3
    with pytest.raises(DecodeError):
        to_nv21(frame)


def test_released_frame_cannot_be_converted():
    frame = solid_frame()
    frame.release()
    with pytest.raises(DecodeError):
        to_bitmap(frame)


def test_decode_jpeg_rejects_malformed_buffer():
    with pytest.raises(DecodeError):
        decode_jpeg(b"definitely not a jpeg")
    with pytest.raises(DecodeError):
        decode_jpeg(b"")


def test_release_callback_runs_once():
    counter = ReleaseCounter()
    frame = solid_frame(on_release=counter)

    frame.release()
    frame.release()

    assert frame.released
    assert counter.count == 1


def test_from_bgr_requires_even_dimensions():
    with pytest.raises(ValueError):
        Frame.from_bgr(np.zeros((5, 4, 3), dtype=np.uint8))


def test_from_bgr_plane_shapes():
    frame = solid_frame(width=64, height=48)
    assert frame.size == (64, 48)
    assert frame.y.shape == (48, 64)
    assert frame.u.shape == (24, 32)
    assert frame.v.shape == (24, 32)
