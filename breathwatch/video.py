"""Luma frames read from a video file or a camera."""

from __future__ import annotations

from typing import Any, Iterator, Optional

import imageio.v2 as iio_v2
import imageio.v3 as iio
import numpy as np

_LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def luma(rgb: np.ndarray) -> np.ndarray:
    """Return the Y channel of an RGB(A) image as a uint8 image.

    A single-channel image is returned as a uint8 copy.
    """
    image = np.asarray(rgb)
    if image.ndim == 2:
        return np.clip(image, 0, 255).astype(np.uint8)
    if image.ndim != 3 or image.shape[2] < 3:
        raise ValueError("expected an RGB image of shape (rows, columns, 3)")
    channels = image[..., :3].astype(np.float64)
    y = sum(weight * channels[..., index] for index, weight in enumerate(_LUMA_WEIGHTS))
    return np.clip(np.rint(y), 0, 255).astype(np.uint8)


class VideoSource:
    """Read single-channel luma frames from a camera or a video file.

    A non-negative ``camera_id`` opens that camera; otherwise ``file_name``
    is opened.  Failure to open either raises ``RuntimeError``.
    """

    def __init__(
        self, camera_id: int, file_name: str, fps: int, width: int, height: int
    ) -> None:
        self.camera_id = camera_id
        self.file_name = "" if camera_id >= 0 else file_name
        self._width = width
        self._height = height
        self._reader: Any = None
        self._frames: Optional[Iterator[np.ndarray]] = None
        self._pending: Optional[np.ndarray] = None
        self._closed = False
        if camera_id >= 0:
            self._open_camera(camera_id, fps, width, height)
        else:
            self._open_file(file_name)

    @property
    def is_file(self) -> bool:
        return self.camera_id < 0

    @property
    def is_camera(self) -> bool:
        return not self.is_file

    def _open_camera(self, camera_id: int, fps: int, width: int, height: int) -> None:
        try:
            self._reader = iio_v2.get_reader(
                f"<video{camera_id}>", fps=fps, size=f"{width}x{height}"
            )
        except Exception as exc:
            raise RuntimeError(f"Cannot open camera {camera_id}") from exc
        size = self._reader.get_meta_data().get("size")
        if size:
            self._width, self._height = int(size[0]), int(size[1])
        self._frames = iter(self._reader)

    def _open_file(self, file_name: str) -> None:
        frames = iio.imiter(file_name)
        try:
            first = next(frames, None)
        except Exception as exc:
            raise RuntimeError("Failed to open file for reading.") from exc
        self._frames = frames
        self._pending = first
        if first is None:
            self._width = self._height = 0
        else:
            self._height, self._width = first.shape[:2]

    def frame_size(self) -> tuple[int, int]:
        """Return the ``(width, height)`` of the frames."""
        return self._width, self._height

    def read(self) -> Optional[np.ndarray]:
        """Return the next luma frame, or ``None`` when the source is exhausted."""
        if self._closed:
            raise ValueError("video source is closed")
        if self._pending is not None:
            frame, self._pending = self._pending, None
            return luma(frame)
        if self._frames is None:
            return None
        frame = next(self._frames, None)
        if frame is None:
            self._frames = None
            return None
        return luma(frame)

    def close(self) -> None:
        """Release the underlying file or camera."""
        if self._closed:
            return
        self._closed = True
        self._pending = None
        frames, self._frames = self._frames, None
        close_frames = getattr(frames, "close", None)
        if close_frames is not None:
            close_frames()
        if self._reader is not None:
            self._reader.close()
            self._reader = None

    def __enter__(self) -> "VideoSource":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()