"""A constant-time Xorshift random generator and a [0, 1) real-number helper.

Not cryptographically safe. The real-number helper never rejects samples, so
its distribution is slightly biased in exchange for constant-time generation.
"""

from __future__ import annotations

_MASK64 = (1 << 64) - 1


class Xorshift64Rand:
    """64-bit Xorshift generator. A seed of 0 is replaced by 4."""

    def __init__(self, initial_state: int) -> None:
        state = initial_state & _MASK64
        self._x = 4 if state == 0 else state

    def __call__(self) -> int:
        x = self._x
        x ^= (x << 13) & _MASK64
        x ^= x >> 7
        x ^= (x << 17) & _MASK64
        self._x = x
        return x

    def min(self) -> int:
        return 1

    def max(self) -> int:
        return _MASK64


def real_number(rng) -> float:
    """Return a number in [0, 1) drawn from ``rng``.

    ``rng`` is any callable returning integers that also provides ``min()``
    and ``max()``.
    """
    low = rng.min()
    v = float(rng() - low) / float(rng.max() - low)
    if v == 1.0:
        # Results must stay in [0, 1); rounding can land exactly on 1.
        return 0.0
    return v