"""Tests for projmap_calibrator.cameras and projmap_calibrator.display."""

from __future__ import annotations

import numpy as np
import pytest

from projmap_calibrator.cameras.base import Camera
from projmap_calibrator.cameras.synthetic import SyntheticCamera
from projmap_calibrator.display.base import PatternDisplay
from projmap_calibrator.display.recording import RecordingDisplay


class TestProtocols:
    """The in-memory devices satisfy the device protocols."""

    def test_camera_protocol_has_required_methods(self) -> None:
        assert hasattr(Camera, "start")
        assert hasattr(Camera, "grab")
        assert hasattr(Camera, "stop")

    def test_synthetic_camera_is_camera(self) -> None:
        assert isinstance(SyntheticCamera(4, 4, []), Camera)

    def test_recording_display_is_display(self) -> None:
        assert isinstance(RecordingDisplay(4, 4), PatternDisplay)


class TestRecordingDisplay:

    def test_records_history(self) -> None:
        display = RecordingDisplay(8, 4)
        a = np.zeros((4, 8), np.uint8)
        b = np.full((4, 8), 255, np.uint8)
        display.display_pattern(a)
        display.display_pattern(b)
        assert display.current is b
        assert len(display.history) == 2

    def test_without_history(self) -> None:
        display = RecordingDisplay(8, 4, keep_history=False)
        display.display_pattern(np.zeros((4, 8), np.uint8))
        assert display.history == []
        assert display.current is not None

    def test_shape_mismatch(self) -> None:
        with pytest.raises(ValueError, match="does not match"):
            RecordingDisplay(8, 4).display_pattern(np.zeros((8, 4), np.uint8))

    def test_clear(self) -> None:
        display = RecordingDisplay(2, 2)
        display.display_pattern(np.ones((2, 2), np.uint8))
        display.clear()
        assert display.current is None


class TestSyntheticCamera:
    """Tests for the synthetic camera renderer."""

    def test_blank_display_gives_ambient(self) -> None:
        display = RecordingDisplay(8, 8)
        cam = SyntheticCamera(8, 8, [(display, np.eye(3))], ambient=12.0)
        frame = cam.grab()
        assert frame.dtype == np.uint8
        assert frame.shape == (8, 8)
        assert np.all(frame == 12)

    def test_identity_view(self) -> None:
        display = RecordingDisplay(8, 4)
        image = np.arange(32, dtype=np.uint8).reshape(4, 8)
        display.display_pattern(image)
        cam = SyntheticCamera(8, 4, [(display, np.eye(3))])
        np.testing.assert_array_equal(cam.grab(), image)

    def test_shifted_view_leaves_dark_border(self) -> None:
        display = RecordingDisplay(8, 4)
        display.display_pattern(np.full((4, 8), 200, np.uint8))
        shift = np.array([[1.0, 0, -2.0], [0, 1.0, 0], [0, 0, 1.0]])
        frame = SyntheticCamera(12, 4, [(display, shift)]).grab()
        assert np.all(frame[:, :2] == 0)
        assert np.all(frame[:, 2:10] == 200)
        assert np.all(frame[:, 10:] == 0)

    def test_views_add_and_saturate(self) -> None:
        a, b = RecordingDisplay(4, 4), RecordingDisplay(4, 4)
        a.display_pattern(np.full((4, 4), 200, np.uint8))
        b.display_pattern(np.full((4, 4), 100, np.uint8))
        cam = SyntheticCamera(4, 4, [(a, np.eye(3)), (b, np.eye(3))])
        assert np.all(cam.grab() == 255)

    def test_occlusion(self) -> None:
        display = RecordingDisplay(6, 6)
        display.display_pattern(np.full((6, 6), 255, np.uint8))
        cam = SyntheticCamera(
            6, 6, [(display, np.eye(3))], ambient=3.0, occlusion=(1, 1, 3, 4),
        )
        frame = cam.grab()
        assert np.all(frame[1:4, 1:3] == 3)
        assert frame[0, 0] == 255

    def test_noise_is_seeded(self) -> None:
        display = RecordingDisplay(6, 6)
        display.display_pattern(np.full((6, 6), 128, np.uint8))
        frames = [
            SyntheticCamera(6, 6, [(display, np.eye(3))], noise_std=5.0, seed=1).grab()
            for _ in range(2)
        ]
        np.testing.assert_array_equal(frames[0], frames[1])
        assert not np.all(frames[0] == 128)

    def test_fail_after(self) -> None:
        cam = SyntheticCamera(2, 2, [], fail_after=2)
        with cam:
            cam.grab()
            cam.grab()
            with pytest.raises(TimeoutError):
                cam.grab(0.1)
        assert cam.frames_grabbed == 2
