"""Linear congruential pseudo-random numbers."""

from __future__ import annotations

RAND_MAX = 0x7FFFFFFF

_MULTIPLIER = 6364136223846793005
_MASK64 = (1 << 64) - 1
_MASK32 = (1 << 32) - 1


class Random:
    """64-bit LCG yielding 31-bit values, seeded by a 32-bit unsigned seed."""

    def __init__(self, seed: int = 1) -> None:
        self._state = 0
        self.srand(seed)

    def srand(self, seed: int) -> None:
        """Reset the generator; the seed is taken as a 32-bit unsigned value."""
        self._state = (seed - 1) & _MASK32

    def rand(self) -> int:
        """Return the next value in ``0 .. RAND_MAX``."""
        self._state = (_MULTIPLIER * self._state + 1) & _MASK64
        return self._state >> 33