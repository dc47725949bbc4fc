"""Frame-difference motion detection driving a cropping state machine."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Optional, Sequence

import numpy as np
from scipy import ndimage

from .commandline import CommandLine
from .riesz import RieszTransform
from .worker import WorkerThread

SPLIT = 3
MINIMUM_FRAMES = 3

_EWMA_ALPHA = 0.3
_RATE_ALPHA = 0.4
_MIN_PEAK_INTERVAL_MS = 400
_MASK_LEVEL = 200
_NOISE_ERODE = 2


class State(Enum):
    """States of the detector's state machine."""

    INIT = auto()            # waiting for frames to settle
    RESET = auto()           # full frame again, ROI to be recomputed
    IDLE = auto()            # evaluating motion in the ROI
    MONITOR_MOTION = auto()  # accumulating motion over several frames
    COMPUTE_ROI = auto()     # computing a new ROI
    VALID_ROI = auto()       # refilling the frame buffer at the new size


class FrameSize(Enum):
    """Which frame rate applies when the transforms are reinitialized."""

    FULL_FRAME = auto()
    CROPPED_FRAME = auto()


@dataclass(frozen=True)
class Rect:
    """An axis-aligned rectangle in pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def __and__(self, other: "Rect") -> "Rect":
        x1, y1 = max(self.x, other.x), max(self.y, other.y)
        x2 = min(self.x + self.width, other.x + other.width)
        y2 = min(self.y + self.height, other.y + other.height)
        if x2 <= x1 or y2 <= y1:
            return Rect(0, 0, 0, 0)
        return Rect(x1, y1, x2 - x1, y2 - y1)

    def crop(self, image: np.ndarray) -> np.ndarray:
        """Return the part of ``image`` inside this rectangle."""
        x0, y0 = max(self.x, 0), max(self.y, 0)
        return image[y0:self.y + self.height, x0:self.x + self.width]


def differential_collins(frames: Sequence[np.ndarray], threshold: int) -> np.ndarray:
    """Mark pixels of the newest of three frames that differ from both others.

    Returns a uint8 image holding 255 where both differences, combined
    bitwise, exceed ``threshold`` and 0 elsewhere.
    """
    first, second, third = (np.asarray(f, dtype=np.uint8) for f in frames)
    if not first.shape == second.shape == third.shape:
        raise ValueError("frames must all have the same shape")
    newest = third.astype(np.int16)
    d1 = np.abs(first.astype(np.int16) - newest).astype(np.uint8)
    d2 = np.abs(second.astype(np.int16) - newest).astype(np.uint8)
    both = np.bitwise_and(d1, d2)
    return np.where(both > threshold, 255, 0).astype(np.uint8)


def _check_morphology(image: np.ndarray, size: int) -> np.ndarray:
    if size < 1:
        raise ValueError("kernel size must be at least 1")
    array = np.asarray(image)
    if array.ndim != 2:
        raise ValueError("expected a single-channel image")
    return array


def erode(image: np.ndarray, size: int) -> np.ndarray:
    """Minimum filter over a ``size`` x ``size`` rectangle."""
    array = _check_morphology(image, size)
    return ndimage.grey_erosion(array, size=(size, size), mode="nearest")


def dilate(image: np.ndarray, size: int) -> np.ndarray:
    """Maximum filter over a ``size`` x ``size`` rectangle."""
    array = _check_morphology(image, size)
    return ndimage.grey_dilation(array, size=(size, size), mode="nearest")


def largest_region(mask: np.ndarray) -> Optional[tuple[int, Rect]]:
    """Find the connected region of ``mask`` with the largest outline area.

    The area is that of the polygon through the region's outer boundary
    pixels.  Returns ``(area, bounding_rect)`` or ``None`` if ``mask`` is empty.
    """
    binary = np.asarray(mask, dtype=bool)
    labels, count = ndimage.label(binary, structure=np.ones((3, 3), dtype=bool))
    if count == 0:
        return None
    best: Optional[tuple[int, Rect]] = None
    for index, window in enumerate(ndimage.find_objects(labels), start=1):
        filled = ndimage.binary_fill_holes(labels[window] == index)
        interior = ndimage.binary_erosion(filled, border_value=0)
        pixels = int(np.count_nonzero(filled))
        boundary = pixels - int(np.count_nonzero(interior))
        area = max(int(pixels - boundary / 2 - 1 + 0.5), 0)
        rows, cols = window
        rect = Rect(cols.start, rows.start, cols.stop - cols.start, rows.stop - rows.start)
        if best is None or area > best[0]:
            best = (area, rect)
    return best


def fit_roi(
    center_x: int, center_y: int, offset: int, size: int, width: int, height: int
) -> Rect:
    """A ``size`` square at ``center - offset``, pushed inside ``width`` x ``height``."""
    target = Rect(center_x - offset, center_y - offset, size, size)
    if (target & Rect(0, 0, width, height)) == target:
        return target
    x, y = target.x, target.y
    if x + size > width:
        x = width - size
    if y + size > height:
        y = height - size
    return Rect(max(x, 0), max(y, 0), size, size)


class MotionDetector:
    """Detect breathing motion in a stream of luma frames.

    ``alarm`` is called whenever no motion has been seen for the configured
    number of seconds.
    """

    def __init__(
        self, config: CommandLine, alarm: Optional[Callable[[], Any]] = None
    ) -> None:
        self._alarm = alarm
        self._diff_threshold = config.diff_threshold
        self._pixel_threshold = config.pixel_threshold
        self._motion_duration = config.motion_duration
        self._frames_to_settle = config.frames_to_settle
        self._roi_update_interval = config.roi_update_interval
        self._roi_window = config.roi_window
        self._crop = config.crop
        self._width = config.frame_width
        self._height = config.frame_height
        self._full_fps = config.full_fps
        self._crop_fps = config.crop_fps
        self._input_fps = config.input_fps
        self._time_to_alarm = config.time_to_alarm
        self._erode_dimension = config.erode_dimension
        self._dilate_dimension = config.dilate_dimension
        self._using_camera = config.camera_id >= 0

        self.state = State.INIT
        self.breathing_rate = 1.0
        self.roi = Rect(0, 0, self._width, self._height)
        self.accumulator = np.zeros((self._height, self._width), dtype=np.uint8)
        self.evaluation: Optional[np.ndarray] = None
        self._frames: list[Optional[np.ndarray]] = [None] * MINIMUM_FRAMES

        self._init_timer = 0
        self._valid_timer = 0
        self._roi_timer = 0
        self._refill_timer = 0
        self._duration = 0
        self._ewma = 0
        self._last_ewma = 0
        self._was_rising = True
        self._no_movement = False
        self._last_zero_start = 0
        self._last_peak_ms: Optional[float] = None
        self._prev_area = self._width * self._height // 3

        self._transforms = [RieszTransform() for _ in range(SPLIT)]
        for transform in self._transforms:
            config.apply(transform)
            transform.fps = self._full_fps if self._using_camera else self._input_fps
        self._workers = [WorkerThread() for _ in range(SPLIT)]

    def __enter__(self) -> "MotionDetector":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        """Stop the worker threads."""
        for worker in self._workers:
            worker.close()

    @staticmethod
    def _sections(frame: np.ndarray) -> list[np.ndarray]:
        rows = frame.shape[0]
        return [frame[rows * i // SPLIT: rows * (i + 1) // SPLIT] for i in range(SPLIT)]

    def _magnify(self, frame: np.ndarray) -> np.ndarray:
        futures = [
            worker.submit(transform.transform, section)
            for worker, transform, section in zip(
                self._workers, self._transforms, self._sections(frame)
            )
        ]
        return np.vstack([future.result() for future in futures])

    def _push_frame(self, frame: np.ndarray) -> None:
        self._frames = self._frames[1:] + [np.array(frame, copy=True)]

    def _difference(self) -> None:
        if any(frame is None for frame in self._frames):
            return
        self.evaluation = differential_collins(self._frames, self._diff_threshold)

    def _monitor_motion(self) -> None:
        if self.state is State.RESET:
            self.accumulator = np.zeros((self._height, self._width), dtype=np.uint8)
            return
        if self.evaluation is not None:
            self.accumulator = np.bitwise_or(self.evaluation, self.accumulator)

    def _calculate_period(self) -> None:
        now = time.monotonic() * 1000.0
        if self._last_peak_ms is None:
            self._last_peak_ms = now
        period = now - self._last_peak_ms
        # Peaks closer than this are the two halves of one breath.
        if period > _MIN_PEAK_INTERVAL_MS:
            rate = 1.0 / (period / 1000.0)
            self.breathing_rate = _RATE_ALPHA * rate + (1 - _RATE_ALPHA) * self.breathing_rate
            self._last_peak_ms = now

    def _sound_alarm(self) -> None:
        if self._alarm is not None:
            self._alarm()
        print("[ERROR] >>>>>  NO MOVEMENT DETECTED!!!!!!\n")

    def _count_changes(self) -> int:
        if self.evaluation is not None:
            self.evaluation = erode(self.evaluation, _NOISE_ERODE)
        if self.state is State.IDLE and self.evaluation is not None:
            changes = int(np.count_nonzero(self.evaluation == 255))
            if changes >= self._pixel_threshold:
                self._duration += 1
                if self._duration >= self._motion_duration:
                    ewma = int(_EWMA_ALPHA * changes + (1 - _EWMA_ALPHA) * self._ewma)
                    self._ewma = ewma
                    if ewma < self._last_ewma and self._was_rising:
                        self._calculate_period()
                        self._was_rising = False
                    elif ewma > self._last_ewma and not self._was_rising:
                        self._was_rising = True
                    self._last_ewma = ewma
                    self._no_movement = False
                    return ewma
            elif self._duration > 0:
                self._duration -= 1
        if self._no_movement:
            if int(time.monotonic()) - self._last_zero_start >= self._time_to_alarm:
                self._sound_alarm()
        else:
            self._no_movement = True
            self._last_zero_start = int(time.monotonic())
        return 0

    def _calculate_roi(self) -> None:
        self.accumulator = dilate(
            erode(self.accumulator, self._erode_dimension), self._dilate_dimension
        )
        third = self._width * self._height // 3
        region = largest_region(self.accumulator > _MASK_LEVEL)
        if region is None:
            print("[info] Hmmm...didn't see any motion....")
            if self.roi.area > third:
                print("[info] Choosing an arbitrary crop for now.")
                self.roi = Rect(0, 0, self._width // 3, self._height // 3)
            return
        area, result = region
        center_x = result.x + result.width // 2
        center_y = result.y + result.height // 2
        if area >= third:
            result = fit_roi(center_x, center_y, 150, 300, self._width, self._height)
            area = 300 * 300
        elif area <= self._width * self._height // 20:
            result = fit_roi(center_x, center_y, 150, 200, self._width, self._height)
            area = 200 * 200
        # Ignore sudden large changes: they indicate a bad read.
        if abs(area - self._prev_area) * 100 // self._prev_area <= 80:
            self._prev_area = area
            self.roi = result

    def _reinitialize(self, frame: np.ndarray, size: FrameSize) -> None:
        if self._using_camera:
            fps = self._full_fps if size is FrameSize.FULL_FRAME else self._crop_fps
        else:
            fps = self._input_fps
        for transform, section in zip(self._transforms, self._sections(frame)):
            transform.initialize(section)
            transform.fps = fps

    def update(self, frame: np.ndarray) -> State:
        """Advance the state machine by one frame and return the new state."""
        frame = np.asarray(frame)
        if frame.ndim != 2:
            raise ValueError("expected a single-channel frame")

        state = self.state
        if state is State.INIT:
            self._init_timer += 1
            self._push_frame(self._magnify(frame))
        elif state is State.RESET:
            self._init_timer += 1
            self._push_frame(self._magnify(frame))
            self._monitor_motion()
        elif state is State.IDLE:
            self._valid_timer += 1
            changes = self._count_changes()
            print(
                f"[info] Pixel Movement: {changes}\t [info] Motion Estimate: "
                f"{self.breathing_rate:f} Hz"
            )
            self._push_frame(self._magnify(self.roi.crop(frame)))
            self._difference()
        elif state is State.MONITOR_MOTION:
            self._roi_timer += 1
            self._push_frame(self._magnify(frame))
            self._difference()
            self._monitor_motion()
        elif state is State.COMPUTE_ROI:
            self._calculate_roi()
        elif state is State.VALID_ROI:
            self._refill_timer += 1
            self._push_frame(self.roi.crop(frame))

        if state is State.INIT:
            if self._init_timer >= self._frames_to_settle:
                self.state = State.MONITOR_MOTION if self._crop else State.IDLE
                self._init_timer = 0
        elif state is State.RESET:
            if self._init_timer >= self._frames_to_settle:
                self.state = State.MONITOR_MOTION
                self._init_timer = 0
        elif state is State.IDLE:
            if self._valid_timer >= self._roi_update_interval:
                if self._crop:
                    self.state = State.RESET
                    self._reinitialize(frame, FrameSize.FULL_FRAME)
                self._valid_timer = 0
        elif state is State.MONITOR_MOTION:
            if self._roi_timer >= self._roi_window:
                self.state = State.COMPUTE_ROI
                self._roi_timer = 0
        elif state is State.COMPUTE_ROI:
            self.state = State.VALID_ROI
        elif state is State.VALID_ROI:
            if self._refill_timer >= MINIMUM_FRAMES:
                self.state = State.IDLE
                self._reinitialize(self.roi.crop(frame), FrameSize.CROPPED_FRAME)
                self._refill_timer = 0
        return self.state