"""Deterministic pseudo-random numbers for compositions.

Draw callbacks run once per frame and, in offline renders, in several worker
processes at once. Any randomness they use must therefore be a pure function
of a seed, never of global RNG state or of how many frames were drawn before.

The generator is mulberry32: a tiny 32-bit generator whose whole state is one
integer, so re-creating it from a seed is free. The intended pattern is one
generator per logical entity, seeded with ``base_seed + index``::

    for i in range(ctx.data["particles"]):
        rng = SeededSequence(ctx.data["seed"] + i)
        x, y = rng.random() * ctx.width, rng.random() * ctx.height
"""

from typing import Sequence, TypeVar

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF


def _imul(a: int, b: int) -> int:
    """32-bit wrapping multiplication (unsigned result)."""
    return (a * b) & _MASK32


class SeededSequence:
    """Reproducible float stream keyed by an integer seed."""

    __slots__ = ("seed", "_state")

    def __init__(self, seed: int):
        self.seed = int(seed)
        self._state = self.seed & _MASK32

    def next(self) -> float:
        """Return the next value in [0, 1)."""
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / 4294967296.0

    random = next

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.next()

    def randint(self, low: int, high: int) -> int:
        """Integer in [low, high], both ends inclusive."""
        if high < low:
            raise ValueError(f"randint range is empty: [{low}, {high}]")
        return low + int(self.next() * (high - low + 1))

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise IndexError("Cannot choose from an empty sequence")
        return items[int(self.next() * len(items))]

    def fork(self, offset: int) -> "SeededSequence":
        """Sub-generator for entity ``offset`` (seed + offset)."""
        return SeededSequence(self.seed + offset)

    def __iter__(self):
        while True:
            yield self.next()

    def __repr__(self) -> str:
        return f"SeededSequence(seed={self.seed})"


def seeded_random(seed: int) -> SeededSequence:
    """Create a generator for ``seed``."""
    return SeededSequence(seed)
