"""Tests for camera frame sources."""

import cv2
import numpy as np
import pytest

from checkin.capture.camera import CameraFrameSource, StaticFrameSource
from checkin.exceptions import CaptureError

from conftest import blank_frame


class FakeCapture:
    """Stands in for cv2.VideoCapture."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.released = False

    def read(self):
        if self.error is not None:
            raise self.error
        return self.result

    def release(self):
        self.released = True


def open_camera(capture: FakeCapture) -> CameraFrameSource:
    camera = CameraFrameSource(camera_index=0)
    camera._capture = capture
    return camera


class TestCameraFrameSource:
    """Tests for the OpenCV frame source."""

    def test_frame_is_converted_to_rgb(self):
        bgr = np.zeros((4, 4, 3), dtype=np.uint8)
        bgr[:, :, 0] = 255  # blue in OpenCV order
        camera = open_camera(FakeCapture(result=(True, bgr)))

        frame = camera.get_frame()

        assert frame.mode == "RGB"
        assert frame.getpixel((0, 0)) == (0, 0, 255)

    def test_driver_error_becomes_capture_error(self):
        camera = open_camera(FakeCapture(error=cv2.error("read failed")))

        with pytest.raises(CaptureError):
            camera.get_frame()

    def test_empty_read_is_capture_error(self):
        camera = open_camera(FakeCapture(result=(False, None)))

        with pytest.raises(CaptureError):
            camera.get_frame()

    def test_unreadable_frame_becomes_capture_error(self):
        camera = open_camera(FakeCapture(result=(True, np.zeros((4, 4), dtype=np.float64))))

        with pytest.raises(CaptureError):
            camera.get_frame()

    def test_close_releases_device(self):
        capture = FakeCapture()
        camera = open_camera(capture)

        camera.close()

        assert capture.released
        assert camera.is_open is False

    def test_frame_without_open_camera(self):
        with pytest.raises(CaptureError):
            CameraFrameSource().get_frame()


class TestStaticFrameSource:
    """Tests for replaying still images."""

    def test_last_frame_repeats(self):
        first, second = blank_frame(), blank_frame()
        source = StaticFrameSource([first, second])

        with source:
            frames = [source.get_frame() for _ in range(3)]

        assert frames == [first, second, second]
        assert source.open_count == 1

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")

        with pytest.raises(CaptureError):
            StaticFrameSource.from_files([path])
