import numpy as np
import pytest

from breathwatch.riesz import (
    RieszPyramid,
    RieszPyramidLevel,
    RieszTransform,
    TemporalBandpass,
    TemporalFilter,
    count_levels,
    pyr_down,
    pyr_up,
)


def _pattern(shift=0.0, shape=(48, 64)):
    rows, cols = shape
    y, x = np.mgrid[0:rows, 0:cols]
    values = 127.5 + 100.0 * np.sin((x + shift) / 5.0) * np.cos(y / 7.0)
    return np.round(values).astype(np.uint8)


def _float_pattern(shape=(40, 56)):
    return _pattern(shape=shape).astype(np.float32) / 255.0


def _configured_transform(alpha):
    rt = RieszTransform()
    rt.high_cutoff = 1.0
    rt.low_cutoff = 0.5
    rt.fps = 10.0
    rt.alpha = alpha
    rt.threshold = 100
    return rt


def test_count_levels_small_sizes():
    assert count_levels(5, 100) == 0
    assert count_levels(100, 5) == 0
    assert count_levels(6, 6) == 1


def test_count_levels_grows_with_size():
    assert count_levels(640, 480) > count_levels(320, 240)


def test_pyr_down_shape_and_constant():
    image = np.full((31, 40), 0.25, np.float32)
    down = pyr_down(image)
    assert down.shape == (16, 20)
    assert np.allclose(down, 0.25, atol=1e-6)


@pytest.mark.parametrize("shape", [(30, 40), (31, 39), (29, 41)])
def test_pyr_up_shape_and_constant(shape):
    small = np.full((15, 20), 0.5, np.float32)
    up = pyr_up(small, shape)
    assert up.shape == shape
    assert np.allclose(up, 0.5, atol=1e-6)


def test_pyr_up_rejects_bad_shape():
    with pytest.raises(ValueError):
        pyr_up(np.zeros((10, 10), np.float32), (25, 20))


def test_pyramid_collapse_reconstructs_frame():
    frame = _float_pattern()
    pyramid = RieszPyramid()
    pyramid.initialize(frame)
    assert len(pyramid.levels) == count_levels(frame.shape[1], frame.shape[0])
    assert np.allclose(pyramid.collapse(), frame, atol=1e-5)


def test_pyramid_build_requires_initialize():
    with pytest.raises(RuntimeError):
        RieszPyramid().build(_float_pattern())


def test_pyramid_rejects_tiny_frame():
    with pytest.raises(ValueError):
        RieszPyramid().initialize(np.zeros((4, 4), np.float32))


def test_unwrap_against_identical_level_gives_zero_phase():
    level = RieszPyramidLevel()
    level.build(_float_pattern())
    level.reset_state()
    prior = RieszPyramidLevel()
    prior.assign(level)
    level.unwrap_orient_phase(prior)
    assert np.allclose(level.phase[0], 0.0)
    assert np.allclose(level.phase[1], 0.0)


def test_amplify_without_change_keeps_band():
    level = RieszPyramidLevel()
    band = _float_pattern() - 0.5
    level.build(band)
    level.reset_state()
    level.amplify(50.0, 3.0)
    assert np.allclose(level.lp, band, atol=1e-6)


def test_assign_copies_band_and_phase_but_not_filter_state():
    source = RieszPyramidLevel()
    source.build(_float_pattern())
    source.reset_state()
    source.phase = (np.ones_like(source.lp), np.ones_like(source.lp))
    target = RieszPyramidLevel()
    target.assign(source)
    assert np.array_equal(target.lp, source.lp)
    assert np.array_equal(target.phase[0], source.phase[0])
    assert target.real_pass[0].shape == (0, 0)
    source.lp[0, 0] += 1.0
    assert target.lp[0, 0] != source.lp[0, 0]


def test_temporal_filter_has_unit_leading_coefficient():
    filt = TemporalFilter(1.0)
    filt.compute_coefficients(5.0)
    assert filt.a[0] == pytest.approx(1.0)
    assert len(filt.a) == len(filt.b) == 2


def test_temporal_filter_converges_to_constant_input():
    filt = TemporalFilter(1.0)
    filt.compute_coefficients(5.0)
    x = np.full((3, 4), 0.3, np.float32)
    state = (np.zeros_like(x), np.zeros_like(x))
    for _ in range(200):
        state = filt.pass_(state, (x, x), (x, x))
    assert np.allclose(state[0], 0.3, atol=1e-4)
    assert np.allclose(state[1], 0.3, atol=1e-4)


def test_temporal_filter_without_rate_raises():
    filt = TemporalFilter(1.0)
    filt.compute_coefficients(0.0)
    x = np.zeros((2, 2), np.float32)
    with pytest.raises(RuntimeError):
        filt.pass_((x, x), (x, x), (x, x))


def test_bandpass_keeps_cutoffs_ordered():
    band = TemporalBandpass(fps=10.0)
    band.set_high_cutoff(1.0)
    band.set_low_cutoff(2.0)
    assert band.lo_cut.frequency == 0.0
    band.set_low_cutoff(0.5)
    assert band.lo_cut.frequency == 0.5
    band.set_high_cutoff(0.2)
    assert band.hi_cut.frequency == 1.0


def test_filter_pyramids_shifts_current_into_prior():
    band = TemporalBandpass(fps=10.0)
    band.set_high_cutoff(1.0)
    band.set_low_cutoff(0.5)
    current, prior = RieszPyramid(), RieszPyramid()
    current.initialize(_float_pattern())
    prior.initialize(_float_pattern())
    current.build(_pattern(shift=1.0, shape=(40, 56)).astype(np.float32) / 255.0)
    current.unwrap_orient_phase(prior)
    band.filter_pyramids(current, prior)
    for level, before in zip(current.levels, prior.levels):
        assert np.array_equal(level.lp, before.lp)


def test_filter_pyramids_rejects_mismatched_pyramids():
    band = TemporalBandpass(fps=10.0)
    small, large = RieszPyramid(), RieszPyramid()
    small.initialize(np.zeros((12, 12), np.float32))
    large.initialize(np.zeros((64, 64), np.float32))
    with pytest.raises(ValueError):
        band.filter_pyramids(small, large)


def test_transform_properties():
    rt = _configured_transform(20)
    assert rt.high_cutoff == 1.0
    assert rt.low_cutoff == 0.5
    assert rt.fps == 10.0


def test_first_transform_returns_frame_unchanged():
    rt = _configured_transform(50)
    frame = _pattern()
    out = rt.transform(frame)
    assert np.array_equal(out, frame)


def test_static_video_is_not_changed():
    rt = _configured_transform(50)
    frame = _pattern()
    rt.transform(frame)
    for _ in range(3):
        out = rt.transform(frame)
        assert out.dtype == np.uint8
        assert np.abs(out.astype(int) - frame.astype(int)).max() <= 1


def test_zero_alpha_reproduces_moving_frames():
    rt = _configured_transform(0)
    rt.transform(_pattern())
    moved = _pattern(shift=0.5)
    out = rt.transform(moved)
    assert out.shape == moved.shape
    assert np.abs(out.astype(int) - moved.astype(int)).max() <= 1


def test_amplification_changes_moving_frames():
    plain = _configured_transform(0)
    magnified = _configured_transform(50)
    for rt in (plain, magnified):
        rt.transform(_pattern())
    moved = _pattern(shift=0.5)
    a = plain.transform(moved)
    b = magnified.transform(moved)
    assert a.shape == b.shape
    assert np.abs(a.astype(int) - b.astype(int)).max() > 0


def test_initialize_rejects_tiny_frame():
    with pytest.raises(ValueError):
        RieszTransform().initialize(np.zeros((3, 3), np.uint8))