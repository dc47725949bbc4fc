import numpy as np
import pytest

from breathwatch.commandline import CommandLine
from breathwatch.motion import (
    MotionDetector,
    Rect,
    State,
    differential_collins,
    dilate,
    erode,
    fit_roi,
    largest_region,
)


def _config(**overrides):
    values = dict(
        frame_width=60,
        frame_height=48,
        frames_to_settle=3,
        roi_window=2,
        roi_update_interval=100,
        time_to_alarm=10,
        crop=False,
    )
    values.update(overrides)
    return CommandLine(**values)


@pytest.fixture
def make_detector():
    created = []

    def build(alarm=None, **overrides):
        detector = MotionDetector(_config(**overrides), alarm)
        created.append(detector)
        return detector

    yield build
    for detector in created:
        detector.close()


def test_differential_collins_marks_changed_pixels():
    base = np.zeros((4, 4), dtype=np.uint8)
    newest = base.copy()
    newest[1, 2] = 255
    result = differential_collins([base, base, newest], 5)
    assert result[1, 2] == 255
    assert np.count_nonzero(result) == 1


def test_differential_collins_threshold_is_strict():
    base = np.zeros((3, 3), dtype=np.uint8)
    newest = np.full((3, 3), 7, dtype=np.uint8)
    assert not differential_collins([base, base, newest], 7).any()
    assert differential_collins([base, base, newest], 6).all()


def test_differential_collins_requires_both_differences():
    first = np.zeros((2, 2), dtype=np.uint8)
    second = np.full((2, 2), 100, dtype=np.uint8)
    newest = np.full((2, 2), 100, dtype=np.uint8)
    assert not differential_collins([first, second, newest], 10).any()


def test_differential_collins_rejects_mismatched_shapes():
    with pytest.raises(ValueError):
        differential_collins(
            [np.zeros((2, 2)), np.zeros((2, 2)), np.zeros((3, 2))], 5
        )


def test_differential_collins_needs_three_frames():
    with pytest.raises(ValueError):
        differential_collins([np.zeros((2, 2)), np.zeros((2, 2))], 5)


def test_erode_removes_isolated_pixel():
    image = np.zeros((8, 8), dtype=np.uint8)
    image[4, 4] = 255
    assert not erode(image, 2).any()


def test_dilate_grows_pixel_to_square():
    image = np.zeros((9, 9), dtype=np.uint8)
    image[4, 4] = 255
    grown = dilate(image, 3)
    assert np.array_equal(np.argwhere(grown), np.argwhere(grown[3:6, 3:6] | 1) + 3)
    assert np.count_nonzero(grown) == 3 * 3


def test_morphology_bounds_image():
    rng = np.random.default_rng(1)
    image = rng.integers(0, 256, size=(12, 15), dtype=np.uint8)
    assert (erode(image, 3) <= image).all()
    assert (dilate(image, 3) >= image).all()


def test_erode_keeps_full_image():
    image = np.full((6, 6), 255, dtype=np.uint8)
    assert np.array_equal(erode(image, 4), image)


def test_morphology_rejects_bad_size():
    with pytest.raises(ValueError):
        erode(np.zeros((4, 4), dtype=np.uint8), 0)


def test_largest_region_empty_mask():
    assert largest_region(np.zeros((5, 5), dtype=bool)) is None


def test_largest_region_picks_bigger_rectangle():
    mask = np.zeros((40, 40), dtype=bool)
    mask[2:5, 3:6] = True
    mask[10:20, 15:25] = True
    area, rect = largest_region(mask)
    assert rect == Rect(15, 10, 10, 10)
    assert area == 81
    assert area < 100


def test_fit_roi_inside():
    assert fit_roi(300, 200, 150, 300, 640, 480) == Rect(150, 50, 300, 300)


def test_fit_roi_shifted_inside_edges():
    right = fit_roi(600, 400, 150, 300, 640, 480)
    assert right.x + right.width == 640
    assert right.y + right.height == 480
    left = fit_roi(10, 10, 150, 200, 640, 480)
    assert (left.x, left.y) == (0, 0)
    assert (left & Rect(0, 0, 640, 480)) == left


def test_rect_intersection_and_crop():
    a = Rect(0, 0, 10, 10)
    b = Rect(5, 5, 10, 10)
    assert (a & b) == Rect(5, 5, 5, 5)
    assert (a & Rect(20, 20, 3, 3)) == Rect(0, 0, 0, 0)
    image = np.arange(100).reshape(10, 10)
    assert b.crop(image).shape == (5, 5)
    assert b.crop(image)[0, 0] == image[5, 5]


def test_detector_settles_into_idle_without_crop(make_detector):
    detector = make_detector()
    frame = np.zeros((48, 60), dtype=np.uint8)
    states = [detector.update(frame) for _ in range(5)]
    assert states[:3] == [State.INIT, State.INIT, State.IDLE]
    assert states[3:] == [State.IDLE, State.IDLE]
    assert detector.roi == Rect(0, 0, 60, 48)
    assert detector.evaluation.shape == (48, 60)
    assert detector.breathing_rate == 1.0


def test_alarm_sounds_when_nothing_moves(make_detector):
    calls = []
    detector = make_detector(alarm=lambda: calls.append(1), time_to_alarm=0)
    frame = np.zeros((48, 60), dtype=np.uint8)
    for _ in range(6):
        detector.update(frame)
    assert len(calls) >= 1


def test_no_alarm_before_timeout(make_detector):
    calls = []
    detector = make_detector(alarm=lambda: calls.append(1), time_to_alarm=10**6)
    frame = np.zeros((48, 60), dtype=np.uint8)
    for _ in range(6):
        detector.update(frame)
    assert calls == []


def test_crop_cycle_reaches_idle_with_arbitrary_roi(make_detector):
    detector = make_detector(frame_width=320, frame_height=240, crop=True)
    frame = np.zeros((240, 320), dtype=np.uint8)
    states = [detector.update(frame) for _ in range(10)]
    assert states == [
        State.INIT,
        State.INIT,
        State.MONITOR_MOTION,
        State.MONITOR_MOTION,
        State.COMPUTE_ROI,
        State.VALID_ROI,
        State.VALID_ROI,
        State.VALID_ROI,
        State.IDLE,
        State.IDLE,
    ]
    assert detector.roi == Rect(0, 0, 320 // 3, 240 // 3)
    assert detector.evaluation.shape == (240 // 3, 320 // 3)


def test_update_rejects_colour_frame(make_detector):
    detector = make_detector()
    with pytest.raises(ValueError):
        detector.update(np.zeros((48, 60, 3), dtype=np.uint8))


def test_update_after_close_fails(make_detector):
    detector = make_detector()
    detector.close()
    with pytest.raises(RuntimeError):
        detector.update(np.zeros((48, 60), dtype=np.uint8))