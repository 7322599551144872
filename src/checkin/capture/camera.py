"""Camera frame sources.

A frame source is a scoped resource: frames can only be read between
``open()`` and ``close()``. Use it as a context manager where possible so the
device is released deterministically.
"""

from pathlib import Path
from typing import Protocol, Sequence

from PIL import Image

from checkin.exceptions import CaptureError


class FrameSource(Protocol):
    """Supplies frames on demand while the camera is held."""

    @property
    def is_open(self) -> bool: ...

    def open(self) -> None: ...

    def close(self) -> None: ...

    def get_frame(self) -> Image.Image: ...


class CameraFrameSource:
    """Reads frames from a local camera with OpenCV.

    Frames are converted from OpenCV's BGR arrays to RGB PIL Images.

    Example:
        with CameraFrameSource(camera_index=0) as camera:
            frame = camera.get_frame()
    """

    def __init__(self, camera_index: int = 0) -> None:
        """Initialize the frame source.

        Args:
            camera_index: OpenCV device index (0 = default camera)
        """
        self.camera_index = camera_index
        self._capture = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> None:
        """Acquire the camera.

        Raises:
            CaptureError: If the device cannot be opened
        """
        if self._capture is not None:
            return

        import cv2

        capture = cv2.VideoCapture(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise CaptureError(
                f"Camera {self.camera_index} could not be opened. "
                "Check that it is connected and not used by another program."
            )
        self._capture = capture

    def close(self) -> None:
        """Release the camera. Safe to call when not open."""
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    def get_frame(self) -> Image.Image:
        """Read one frame.

        Raises:
            CaptureError: If the camera is not open or the read fails
        """
        if self._capture is None:
            raise CaptureError("Frame requested without an open camera")

        import cv2

        try:
            ok, frame = self._capture.read()
        except cv2.error as e:
            raise CaptureError(f"Camera {self.camera_index} read failed: {e}") from e
        if not ok or frame is None:
            raise CaptureError(f"Camera {self.camera_index} returned no frame")

        try:
            return Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
        except (cv2.error, TypeError, ValueError) as e:
            raise CaptureError(f"Camera {self.camera_index} returned an unreadable frame: {e}") from e

    def __enter__(self) -> "CameraFrameSource":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()


class StaticFrameSource:
    """Replays a fixed sequence of images as camera frames.

    After the last image, the final frame repeats. Used to scan still
    images through the same pipeline as the camera.
    """

    def __init__(self, frames: Sequence[Image.Image]) -> None:
        if not frames:
            raise ValueError("StaticFrameSource needs at least one frame")
        self._frames = list(frames)
        self._position = 0
        self._open = False
        self.open_count = 0

    @classmethod
    def from_files(cls, paths: Sequence[Path]) -> "StaticFrameSource":
        """Load frames from image files.

        Raises:
            CaptureError: If an image cannot be read
        """
        frames = []
        for path in paths:
            try:
                with Image.open(path) as img:
                    img.load()
                    frames.append(img.convert("RGB"))
            except OSError as e:
                raise CaptureError(f"Cannot read image {path}: {e}") from e
        return cls(frames)

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True
        self.open_count += 1

    def close(self) -> None:
        self._open = False

    def get_frame(self) -> Image.Image:
        if not self._open:
            raise CaptureError("Frame requested without an open camera")
        frame = self._frames[min(self._position, len(self._frames) - 1)]
        self._position += 1
        return frame

    def __enter__(self) -> "StaticFrameSource":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()
