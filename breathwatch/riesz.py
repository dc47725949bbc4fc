"""Phase-based motion magnification with a Riesz pyramid."""

from __future__ import annotations

import math

import numpy as np
from scipy.ndimage import correlate1d

from .butterworth import butterworth

ComplexPair = tuple[np.ndarray, np.ndarray]

_SCALE = 1.0 / 255.0
_PI_PERCENT = math.pi / 100.0

_DOWN_KERNEL = np.array([1.0, 4.0, 6.0, 4.0, 1.0], dtype=np.float32) / 16.0
_UP_KERNEL = np.array([1.0, 4.0, 6.0, 4.0, 1.0], dtype=np.float32) / 8.0
_RIESZ_KERNEL = np.array([-0.6, 0.0, 0.6], dtype=np.float32)


def _gaussian_kernel(size: int, sigma: float) -> np.ndarray:
    centre = (size - 1) / 2.0
    offsets = np.arange(size, dtype=np.float64) - centre
    weights = np.exp(-(offsets**2) / (2.0 * sigma * sigma))
    return (weights / weights.sum()).astype(np.float32)


_SIGMA = 3.0
_BLUR_KERNEL = _gaussian_kernel(int(1 + 4 * _SIGMA), _SIGMA)


def _as_image(image: np.ndarray) -> np.ndarray:
    array = np.asarray(image, dtype=np.float32)
    if array.ndim != 2 or array.size == 0:
        raise ValueError("expected a non-empty single-channel image")
    return array


def _separable(image: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    out = correlate1d(image, kernel, axis=0, mode="mirror")
    return correlate1d(out, kernel, axis=1, mode="mirror")


def _safe_divide(dividend: np.ndarray, divisor: np.ndarray) -> np.ndarray:
    """Divide elementwise, giving 1 wherever the divisor is zero."""
    out = np.ones(np.broadcast(dividend, divisor).shape, dtype=np.float32)
    np.divide(dividend, divisor, out=out, where=divisor != 0)
    return out


def count_levels(width: int, height: int) -> int:
    """Number of pyramid levels for a frame of the given size."""
    levels = 0
    while width > 5 and height > 5:
        levels += 1
        width, height = (1 + width) // 2, (1 + height) // 2
    return levels


def pyr_down(image: np.ndarray) -> np.ndarray:
    """Blur with a 5-tap Gaussian and keep every other row and column."""
    blurred = _separable(_as_image(image), _DOWN_KERNEL)
    return np.ascontiguousarray(blurred[::2, ::2])


def pyr_up(image: np.ndarray, shape: tuple[int, int]) -> np.ndarray:
    """Upsample ``image`` to ``shape`` (rows, columns) and smooth it."""
    src = _as_image(image)
    rows, cols = (int(n) for n in shape)
    for dst, n in ((rows, src.shape[0]), (cols, src.shape[1])):
        if dst <= 0 or abs(dst - 2 * n) > dst % 2:
            raise ValueError(f"cannot upsample {src.shape} to {tuple(shape)}")
    need_rows, need_cols = (rows + 1) // 2, (cols + 1) // 2
    pad_rows = max(need_rows - src.shape[0], 0)
    pad_cols = max(need_cols - src.shape[1], 0)
    if pad_rows or pad_cols:
        src = np.pad(src, ((0, pad_rows), (0, pad_cols)), mode="edge")
    up = np.zeros((rows, cols), dtype=np.float32)
    up[::2, ::2] = src[:need_rows, :need_cols]
    return _separable(up, _UP_KERNEL)


class TemporalFilter:
    """A first-order Butterworth low-pass filter applied frame by frame."""

    def __init__(self, frequency: float) -> None:
        self.frequency = frequency
        self.a: list[float] | None = None
        self.b: list[float] | None = None

    def compute_coefficients(self, half_fps: float) -> None:
        """Design the filter for a Nyquist frequency of ``half_fps``.

        Coefficients are cleared while the sampling rate or the cutoff is 0.
        """
        if half_fps == 0 or self.frequency == 0:
            self.a = self.b = None
            return
        self.a, self.b = butterworth(1, self.frequency / half_fps)

    def _pass_each(
        self, result: np.ndarray, phase: np.ndarray, prior: np.ndarray
    ) -> np.ndarray:
        a, b = self.a, self.b
        out = b[0] * phase + b[1] * prior - a[1] * result
        return (out / a[0]).astype(np.float32)

    def pass_(
        self, result: ComplexPair, phase: ComplexPair, prior: ComplexPair
    ) -> ComplexPair:
        """Advance the filter state ``result`` by one frame and return it."""
        if self.a is None or self.b is None:
            raise RuntimeError("filter coefficients have not been computed")
        return (
            self._pass_each(result[0], phase[0], prior[0]),
            self._pass_each(result[1], phase[1], prior[1]),
        )


def _zeros_pair(shape: tuple[int, ...]) -> ComplexPair:
    return (np.zeros(shape, np.float32), np.zeros(shape, np.float32))


class RieszPyramidLevel:
    """One Laplacian band with its Riesz transform and phase state."""

    def __init__(self) -> None:
        empty = np.zeros((0, 0), np.float32)
        self.lp = empty
        self.r_real = empty
        self.r_imag = empty
        self.phase: ComplexPair = (empty, empty)
        self.real_pass: ComplexPair = (empty, empty)
        self.imag_pass: ComplexPair = (empty, empty)

    def build(self, octave: np.ndarray) -> None:
        """Store the band and compute its Riesz transform."""
        self.lp = _as_image(octave)
        self.r_real = correlate1d(self.lp, _RIESZ_KERNEL, axis=1, mode="mirror")
        self.r_imag = correlate1d(self.lp, _RIESZ_KERNEL, axis=0, mode="mirror")

    def reset_state(self) -> None:
        """Zero the phase and filter state to match the current band size."""
        shape = self.lp.shape
        self.phase = _zeros_pair(shape)
        self.real_pass = _zeros_pair(shape)
        self.imag_pass = _zeros_pair(shape)

    def assign(self, current: "RieszPyramidLevel") -> None:
        """Copy the band, transform and phase of ``current``; keep filter state."""
        self.lp = current.lp.copy()
        self.r_real = current.r_real.copy()
        self.r_imag = current.r_imag.copy()
        self.phase = (current.phase[0].copy(), current.phase[1].copy())

    def unwrap_orient_phase(self, prior: "RieszPyramidLevel") -> None:
        """Compute the oriented phase difference from ``prior`` to this band."""
        lp, prior_lp = self.lp, prior.lp
        temp1 = lp * prior_lp + self.r_real * prior.r_real + self.r_imag * prior.r_imag
        temp2 = self.r_real * prior_lp - prior.r_real * lp
        temp3 = self.r_imag * prior_lp - prior.r_imag * lp
        temp_p = temp2 * temp2 + temp3 * temp3
        phi = np.sqrt(temp_p + temp1 * temp1)
        temp1 = _safe_divide(temp1, phi)
        phi = np.arccos(np.clip(temp1, -1.0, 1.0))
        temp_p = np.sqrt(temp_p)
        self.phase = (
            (_safe_divide(temp2, temp_p) * phi).astype(np.float32),
            (_safe_divide(temp3, temp_p) * phi).astype(np.float32),
        )

    def amplify(self, alpha: float, threshold: float) -> None:
        """Shift the band's phase by ``alpha`` times the filtered change."""
        lp, r_real, r_imag = self.lp, self.r_real, self.r_imag
        amplitude = np.sqrt(r_real * r_real + r_imag * r_imag + lp * lp)
        cos_change = self.real_pass[0] - self.imag_pass[0]
        sin_change = self.real_pass[1] - self.imag_pass[1]

        cos_norm = _separable(cos_change * amplitude, _BLUR_KERNEL)
        sin_norm = _separable(sin_change * amplitude, _BLUR_KERNEL)
        amplitude = _separable(amplitude, _BLUR_KERNEL)
        cos_norm = _safe_divide(cos_norm, amplitude)
        sin_norm = _safe_divide(sin_norm, amplitude)

        mag_v = np.sqrt(cos_norm * cos_norm + sin_norm * sin_norm)
        mag_v2 = np.minimum(mag_v * np.float32(alpha), np.float32(threshold))
        pair = _safe_divide(r_real * cos_norm + r_imag * sin_norm, mag_v)
        self.lp = (lp * np.cos(mag_v2) - pair * np.sin(mag_v2)).astype(np.float32)


class RieszPyramid:
    """A Laplacian pyramid whose bands carry Riesz phase information."""

    def __init__(self) -> None:
        self.levels: list[RieszPyramidLevel] = []

    @property
    def initialized(self) -> bool:
        return bool(self.levels)

    def __bool__(self) -> bool:
        return self.initialized

    def initialize(self, frame: np.ndarray) -> None:
        """Size the pyramid for ``frame``, build it and zero its state."""
        image = _as_image(frame)
        count = count_levels(image.shape[1], image.shape[0])
        if count == 0:
            raise ValueError(f"frame of shape {image.shape} is too small")
        self.levels = [RieszPyramidLevel() for _ in range(count)]
        self.build(image)
        for level in self.levels:
            level.reset_state()

    def build(self, frame: np.ndarray) -> None:
        """Decompose ``frame`` into the pyramid's bands."""
        if not self.levels:
            raise RuntimeError("pyramid is not initialized")
        octave = _as_image(frame)
        for level in self.levels[:-1]:
            down = pyr_down(octave)
            level.build(octave - pyr_up(down, octave.shape))
            octave = down
        self.levels[-1].build(octave)

    def unwrap_orient_phase(self, prior: "RieszPyramid") -> None:
        """Compute phase differences against ``prior`` for all but the top level."""
        for level, before in zip(self.levels[:-1], prior.levels[:-1]):
            level.unwrap_orient_phase(before)

    def amplify(self, alpha: float, threshold: float) -> None:
        """Amplify motion by ``alpha`` up to ``threshold`` in all but the top level."""
        for level in reversed(self.levels[:-1]):
            level.amplify(alpha, threshold)

    def collapse(self) -> np.ndarray:
        """Return the frame reconstructed from the pyramid."""
        if not self.levels:
            raise RuntimeError("pyramid is not initialized")
        result = self.levels[-1].lp
        for level in reversed(self.levels[:-1]):
            result = pyr_up(result, level.lp.shape) + level.lp
        return result


class TemporalBandpass:
    """A temporal band-pass made of a low-cut and a high-cut filter."""

    def __init__(self, fps: float = 0.0) -> None:
        self.fps = fps
        self.lo_cut = TemporalFilter(0.0)
        self.hi_cut = TemporalFilter(0.0)

    def compute_filter(self) -> None:
        """Recompute both filters for the current cutoffs and frame rate."""
        half_fps = self.fps / 2.0
        self.lo_cut.compute_coefficients(half_fps)
        self.hi_cut.compute_coefficients(half_fps)

    def set_low_cutoff(self, frequency: float) -> None:
        """Set the low cutoff unless it would exceed the high cutoff."""
        if frequency <= self.hi_cut.frequency:
            self.lo_cut.frequency = frequency
            self.compute_filter()

    def set_high_cutoff(self, frequency: float) -> None:
        """Set the high cutoff unless it would fall below the low cutoff."""
        if frequency >= self.lo_cut.frequency:
            self.hi_cut.frequency = frequency
            self.compute_filter()

    def filter_pyramids(self, current: RieszPyramid, prior: RieszPyramid) -> None:
        """Filter the phase of ``current`` and shift it into ``prior``."""
        if len(current.levels) != len(prior.levels):
            raise ValueError("pyramids have different numbers of levels")
        for level, before in zip(current.levels[:-1], prior.levels[:-1]):
            level.real_pass = self.hi_cut.pass_(level.real_pass, level.phase, before.phase)
            level.imag_pass = self.lo_cut.pass_(level.imag_pass, level.phase, before.phase)
        for level, before in zip(current.levels, prior.levels):
            before.assign(level)


def _to_float(frame: np.ndarray) -> np.ndarray:
    return _as_image(frame) * np.float32(_SCALE)


def _to_uint8(image: np.ndarray) -> np.ndarray:
    scaled = np.nan_to_num(image * 255.0, nan=0.0)
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


class RieszTransform:
    """Magnify small motions in a stream of single-channel frames."""

    def __init__(self) -> None:
        self.alpha = 0.0
        self.threshold = 0.0
        self._band = TemporalBandpass()
        self._current = RieszPyramid()
        self._prior = RieszPyramid()

    @property
    def fps(self) -> float:
        """Frames per second: the temporal filters' sampling frequency."""
        return self._band.fps

    @fps.setter
    def fps(self, value: float) -> None:
        self._band.fps = value
        self._band.compute_filter()

    @property
    def low_cutoff(self) -> float:
        return self._band.lo_cut.frequency

    @low_cutoff.setter
    def low_cutoff(self, frequency: float) -> None:
        self._band.set_low_cutoff(frequency)

    @property
    def high_cutoff(self) -> float:
        return self._band.hi_cut.frequency

    @high_cutoff.setter
    def high_cutoff(self, frequency: float) -> None:
        self._band.set_high_cutoff(frequency)

    def initialize(self, frame: np.ndarray) -> None:
        """Reset the pyramids to the size and content of ``frame``."""
        image = _to_float(frame)
        self._current.initialize(image)
        self._prior.initialize(image)

    def transform(self, frame: np.ndarray) -> np.ndarray:
        """Return ``frame`` with motion magnified.

        The first frame only initializes the state and is returned unchanged.
        """
        source = np.asarray(frame)
        image = _to_float(source)
        if not self._current:
            self._current.initialize(image)
            self._prior.initialize(image)
            return source.copy()
        self._current.build(image)
        self._current.unwrap_orient_phase(self._prior)
        self._band.filter_pyramids(self._current, self._prior)
        self._current.amplify(self.alpha, self.threshold * _PI_PERCENT)
        return _to_uint8(self._current.collapse())