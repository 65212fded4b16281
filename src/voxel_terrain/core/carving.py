"""Rasterize cave worms into a solid/carved boolean volume."""

from __future__ import annotations

import math
from typing import Iterable

import numpy as np

from .noise import lerp, perlin01
from .worms import Worm


def clamp_ratio(radius_noise_ratio: float) -> float:
    return min(max(float(radius_noise_ratio), 0.0), 1.0)


def taper(index: int, count: int) -> float:
    """Parabola that is 1 halfway along a trajectory and 0 at both ends."""
    if count <= 1:
        return 0.0
    # Endpoint form: the last sample gets taper 0, not index / count.
    t = index / (count - 1)
    return -4.0 * (t - 0.5) * (t - 0.5) + 1.0


def radius_noise(point: tuple[float, float, float]) -> float:
    x, y, z = point
    return perlin01(x / 13.0 + y * 0.12785, z / 7.0 + y * 0.07893)


def sample_radius(worm: Worm, index: int, min_radius: float, radius_noise_ratio: float) -> float:
    """Carve radius at trajectory sample ``index``."""
    ratio = clamp_ratio(radius_noise_ratio)
    noise_value = radius_noise(worm.trajectory[index]) if ratio > 0.0 else 0.0
    normalized = ratio * noise_value + (1.0 - ratio) * taper(index, len(worm.trajectory))
    return lerp(min_radius, worm.max_radius, normalized)


def carve_into(
    volume: np.ndarray,
    worms: Iterable[Worm],
    min_radius: float,
    radius_noise_ratio: float,
) -> np.ndarray:
    """Clear every cell within a worm's per-sample sphere; cells are never restored."""
    width, height, depth = volume.shape
    for worm in worms:
        for index, point in enumerate(worm.trajectory):
            radius = sample_radius(worm, index, min_radius, radius_noise_ratio)
            # Truncation toward zero, matching the lattice cell a point falls in.
            cx, cy, cz = (int(coord) for coord in point)
            reach = math.ceil(radius)

            x0, x1 = max(cx - reach, 0), min(cx + reach, width - 1)
            y0, y1 = max(cy - reach, 0), min(cy + reach, height - 1)
            z0, z1 = max(cz - reach, 0), min(cz + reach, depth - 1)
            if x1 < x0 or y1 < y0 or z1 < z0:
                continue

            dx = np.arange(x0, x1 + 1, dtype=np.float64)[:, None, None] - cx
            dy = np.arange(y0, y1 + 1, dtype=np.float64)[None, :, None] - cy
            dz = np.arange(z0, z1 + 1, dtype=np.float64)[None, None, :] - cz
            inside = np.sqrt(dx * dx + dy * dy + dz * dz) <= radius
            volume[x0 : x1 + 1, y0 : y1 + 1, z0 : z1 + 1] &= ~inside
    return volume


def carve(
    worms: Iterable[Worm],
    width: int,
    height: int,
    depth: int,
    min_radius: float,
    radius_noise_ratio: float,
) -> np.ndarray:
    """Return a ``(width, height, depth)`` volume, ``True`` where rock remains."""
    volume = np.ones((width, height, depth), dtype=bool)
    return carve_into(volume, worms, min_radius, radius_noise_ratio)


__all__ = [
    "carve",
    "carve_into",
    "clamp_ratio",
    "radius_noise",
    "sample_radius",
    "taper",
]
