"""Seeded multi-octave Perlin noise planes."""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
from noise import pnoise2

from .random import StreamFactory, default_stream

Array = np.ndarray

OCTAVE_OFFSET_RANGE = 100000
MIN_SCALE = 0.01
# Prime divisor keeping sample coordinates off the integer lattice.
LATTICE_DIVISOR = 29.0
_REPEAT = 1 << 16


def lerp(a: float, b: float, t: float) -> float:
    t = min(max(t, 0.0), 1.0)
    return a + (b - a) * t


def inverse_lerp(a: float, b: float, value: float) -> float:
    if a == b:
        return 0.0
    return min(max((value - a) / (b - a), 0.0), 1.0)


def perlin01(x: float, y: float) -> float:
    """Perlin noise remapped to [0, 1]; flat (0.5) on integer lattice points."""
    value = 0.5 * (pnoise2(float(x), float(y), repeatx=_REPEAT, repeaty=_REPEAT) + 1.0)
    return min(max(value, 0.0), 1.0)


def octave_offsets(
    octaves: int,
    offset: Tuple[int, int],
    persistence: float,
    seed: int,
    stream_factory: Optional[StreamFactory] = None,
) -> tuple[list[tuple[float, float]], float]:
    """Draw per-octave offsets and return them with the amplitude total."""
    stream = (stream_factory or default_stream)(seed)
    offsets: list[tuple[float, float]] = []
    max_amplitude = 0.0
    amplitude = 1.0
    for _ in range(octaves):
        max_amplitude += amplitude
        ox = stream.integer(-OCTAVE_OFFSET_RANGE, OCTAVE_OFFSET_RANGE) + offset[0]
        oy = stream.integer(-OCTAVE_OFFSET_RANGE, OCTAVE_OFFSET_RANGE) + offset[1]
        offsets.append((float(ox), float(oy)))
        amplitude *= persistence
    return offsets, max_amplitude


def generate_plane(
    width: int,
    depth: int,
    offset: Tuple[int, int],
    scale: float,
    octaves: int,
    lacunarity: float,
    persistence: float,
    seed: int,
    stream_factory: Optional[StreamFactory] = None,
) -> Array:
    """Return a ``(width, depth)`` float32 plane of fractal noise in [0, 1]."""
    if octaves < 1:
        raise ValueError(f"octaves must be >= 1, got {octaves}")
    if width < 0 or depth < 0:
        raise ValueError(f"Plane dimensions must be non-negative, got {width}x{depth}")

    offsets, max_amplitude = octave_offsets(octaves, offset, persistence, seed, stream_factory)
    if scale <= 0:
        scale = MIN_SCALE

    plane = np.empty((width, depth), dtype=np.float32)
    half_width = width / 2.0
    half_depth = depth / 2.0
    for i in range(width):
        for j in range(depth):
            amplitude = 1.0
            frequency = 1.0
            total = 0.0
            for ox, oy in offsets:
                nx = (i - half_width + ox) / LATTICE_DIVISOR * scale * frequency
                ny = (j - half_depth + oy) / LATTICE_DIVISOR * scale * frequency
                total += perlin01(nx, ny) * amplitude
                amplitude *= persistence
                frequency *= lacunarity
            plane[i, j] = inverse_lerp(0.0, max_amplitude, total)
    return plane


__all__ = [
    "generate_plane",
    "inverse_lerp",
    "lerp",
    "octave_offsets",
    "perlin01",
]
