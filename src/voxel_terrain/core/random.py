"""Deterministic draw streams shared by the noise and worm generators."""

from __future__ import annotations

from typing import Callable, Protocol

import numpy as np

_INT32_SPAN = 1 << 32
_INT32_MIN = -(1 << 31)


class DrawStream(Protocol):
    """Ordered source of pseudo-random draws."""

    def uniform(self) -> float:
        """Return a float in [0, 1)."""

    def integer(self, low: int, high: int) -> int:
        """Return an int in [low, high)."""


StreamFactory = Callable[[int], DrawStream]


class PcgDrawStream:
    """Draw stream backed by numpy's PCG64 bit generator.

    The seed is reduced to its low 32 bits so that negative seeds produced by
    the 32-bit worm seed mixer map onto valid PCG64 seeds.
    """

    __slots__ = ("_seed", "_rng")

    def __init__(self, seed: int) -> None:
        self._seed = int(seed) & 0xFFFFFFFF
        self._rng = np.random.Generator(np.random.PCG64(self._seed))

    @property
    def seed(self) -> int:
        return self._seed

    def uniform(self) -> float:
        return float(self._rng.random())

    def integer(self, low: int, high: int) -> int:
        return int(self._rng.integers(low, high))

    def __repr__(self) -> str:
        return f"PcgDrawStream(seed={self._seed})"


def default_stream(seed: int) -> DrawStream:
    return PcgDrawStream(seed)


default_stream.stream_id = "pcg64/low32"


def stream_identity(factory: StreamFactory) -> str:
    """Stable name for a stream factory, used to key cached pipeline output.

    Factories may set a ``stream_id`` attribute; otherwise the qualified
    function name is used.
    """
    explicit = getattr(factory, "stream_id", None)
    if explicit is not None:
        return str(explicit)
    module = getattr(factory, "__module__", None) or type(factory).__module__
    name = getattr(factory, "__qualname__", None) or type(factory).__qualname__
    code = getattr(factory, "__code__", None)
    if code is not None and "<" in name:
        # Lambdas and nested functions share qualnames; their source line does not.
        return f"{module}.{name}@{code.co_firstlineno}"
    return f"{module}.{name}"


def wrap_int32(value: int) -> int:
    """Wrap an arbitrary Python int into the signed 32-bit range."""
    return (value - _INT32_MIN) % _INT32_SPAN + _INT32_MIN


def sub_seed(seed: int, multiplier: int) -> int:
    return wrap_int32(int(seed) * int(multiplier))


def worm_seed(point: tuple[int, int], offset: tuple[int, int], seed: int) -> int:
    """Mix a start point, the global offset and the seed into a worm seed.

    Every intermediate value is wrapped to a signed 32-bit integer and the
    right shifts are arithmetic, so the result is stable across platforms.
    """
    px, pz = int(point[0]), int(point[1])
    ox, oz = int(offset[0]), int(offset[1])

    value = wrap_int32((px + ox) * 148867)
    value = wrap_int32(value ^ (value >> 8))
    value = wrap_int32(value * 4895351)
    value = wrap_int32(value + int(seed))
    value = wrap_int32(value ^ (value << 8))
    value = wrap_int32(value * 878023)
    value = wrap_int32(value + pz + oz)
    value = wrap_int32(value ^ (value >> 8))
    return value


__all__ = [
    "DrawStream",
    "PcgDrawStream",
    "StreamFactory",
    "default_stream",
    "stream_identity",
    "sub_seed",
    "worm_seed",
    "wrap_int32",
]
