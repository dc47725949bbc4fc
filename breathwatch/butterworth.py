"""Digital Butterworth low-pass filter design via the bilinear transform."""

from __future__ import annotations

import cmath
import math
from math import comb

_SAMPLING_FREQUENCY = 2.0


def _polynomial_coefficients(roots: list[complex]) -> list[complex]:
    """Return the coefficients of the polynomial having ``roots``.

    Roots are sorted with real parts dominating to keep precision.  When the
    roots with non-negative imaginary part match those with non-positive
    imaginary part, the coefficients are forced to be real.
    """
    roots = sorted(roots, key=lambda z: (z.real, z.imag))
    coeffs = [complex(1.0)] + [0j] * len(roots)
    for sofar, root in enumerate(roots, start=1):
        w = -root
        for j in range(sofar, 0, -1):
            coeffs[j] = coeffs[j] * w + coeffs[j - 1]
        coeffs[0] *= w

    positive = [r for r in roots if not r.imag < 0]
    negative = [r for r in roots if not r.imag > 0]
    negative = (negative + [0j] * len(positive))[: len(positive)]
    if positive == negative:
        coeffs = [complex(c.real) for c in coeffs]
    return coeffs


def _normalize(
    b: list[complex], a: list[complex]
) -> tuple[list[complex], list[complex]]:
    """Strip leading zeros of ``a`` and divide both by its leading term."""
    skip = 0
    while skip < len(a) and a[skip] == 0:
        skip += 1
    a = a[skip:]
    if not a or a[0] == 0:
        raise ValueError("Polynomial is 0")
    leading = a[0]
    return [x / leading for x in b], [x / leading for x in a]


def _to_lowpass(
    b: list[complex], a: list[complex], w0: float
) -> tuple[list[complex], list[complex]]:
    """Scale a normalized transfer function to the cutoff frequency ``w0``."""
    d, n = len(a), len(b)
    size = max(d, n)
    start1 = max(n - d, 0)
    start2 = max(d - n, 0)
    powers = [w0 ** float(k) for k in range(size - 1, -1, -1)]
    b = list(b)
    a = list(a)
    for k in range(start2, min(len(powers), start2 + len(b))):
        b[k - start2] *= powers[start1] / powers[k]
    for k in range(start1, min(len(powers), start1 + len(a))):
        a[k - start1] *= powers[start1] / powers[k]
    return _normalize(b, a)


def _bilinear_coefficients(
    coeffs: list[complex], degree: int, order: int, fs: float
) -> list[complex]:
    result = []
    for j in range(order + 1):
        value = 0j
        for i in range(degree + 1):
            scale = coeffs[degree - i] * (2.0 * fs) ** i
            for k in range(i + 1):
                l = j - k
                if 0 <= l <= order - i:
                    sign = -1 if k % 2 else 1
                    value += comb(i, k) * comb(order - i, l) * sign * scale
        result.append(complex(value.real))
    return result


def _bilinear_transform(
    b: list[complex], a: list[complex], fs: float
) -> tuple[list[complex], list[complex]]:
    """Map analog coefficients to a digital filter sampled at ``fs``."""
    d = len(a) - 1
    n = len(b) - 1
    order = max(n, d)
    b_prime = _bilinear_coefficients(b, n, order, fs)
    a_prime = _bilinear_coefficients(a, d, order, fs)
    return _normalize(b_prime, a_prime)


def _prototype_poles(order: int) -> list[complex]:
    """Poles of the normalized analog Butterworth filter of ``order``."""
    return [
        cmath.exp(1j * (2.0 * k - 1) / (2.0 * order) * math.pi) * 1j
        for k in range(1, order + 1)
    ]


def butterworth(order: int, wn: float) -> tuple[list[float], list[float]]:
    """Design a digital low-pass Butterworth filter.

    ``wn`` is the cutoff frequency as a fraction of the Nyquist frequency.
    Returns ``(a, b)``: the denominator and numerator coefficients, highest
    power of ``z`` first, with ``a[0] == 1``.
    """
    if order < 0:
        raise ValueError("filter order must not be negative")
    w0 = 2.0 * _SAMPLING_FREQUENCY * math.tan(math.pi * wn / _SAMPLING_FREQUENCY)
    gain = 1.0
    a = _polynomial_coefficients(_prototype_poles(order))
    b = [c * gain for c in _polynomial_coefficients([])]
    b, a = _to_lowpass(b, a, w0)
    b, a = _bilinear_transform(b, a, _SAMPLING_FREQUENCY)
    return [z.real for z in a], [z.real for z in b]