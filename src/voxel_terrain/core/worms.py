"""Cave worm start-point detection and trajectory planning."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from .noise import generate_plane, lerp, perlin01
from .random import DrawStream, StreamFactory, default_stream, sub_seed, worm_seed

Point3 = Tuple[float, float, float]

STARTING_POINT_SEED_MULTIPLIER = 169259

MIN_PITCH = -80.0
MAX_PITCH = -10.0
MAX_PITCH_CHANGE = 12.0
MAX_YAW_CHANGE = 36.0
STEP_LENGTH = 1.375

ANGLE_OFFSET_RANGE = 100000
ANGLE_SCALE_A = 0.987431477
ANGLE_SCALE_B = 0.845458483
# Per-step advance of the four noise inputs; non-integer so samples stay off the lattice.
NOISE_STEP_A = (0.1219, 0.0737)
NOISE_STEP_B = (0.08723, 0.093541)

SURVIVAL_DECAY = 0.99925
SURVIVAL_HEIGHT_BONUS = 0.00075


@dataclass(frozen=True)
class Worm:
    """A finished cave path and the widest radius it may carve."""

    trajectory: Tuple[Point3, ...]
    max_radius: float

    def __len__(self) -> int:
        return len(self.trajectory)

    def as_array(self) -> np.ndarray:
        return np.asarray(self.trajectory, dtype=np.float64).reshape(-1, 3)


@dataclass(frozen=True)
class WormDraws:
    """The draws taken before a worm starts walking, in draw order."""

    max_radius: float
    start_height: int
    angle_a: Tuple[float, float]
    angle_b: Tuple[float, float]

    @classmethod
    def take(cls, stream: DrawStream, max_radius: float, height: int) -> "WormDraws":
        radius = max_radius * (0.4 + stream.uniform() * 0.6)
        start = stream.uniform() - 0.05
        start_height = int(start * start * (height + 1))
        a = (
            stream.integer(-ANGLE_OFFSET_RANGE, ANGLE_OFFSET_RANGE) * ANGLE_SCALE_A,
            stream.integer(-ANGLE_OFFSET_RANGE, ANGLE_OFFSET_RANGE) * ANGLE_SCALE_A,
        )
        b = (
            stream.integer(-ANGLE_OFFSET_RANGE, ANGLE_OFFSET_RANGE) * ANGLE_SCALE_B,
            stream.integer(-ANGLE_OFFSET_RANGE, ANGLE_OFFSET_RANGE) * ANGLE_SCALE_B,
        )
        return cls(max_radius=radius, start_height=start_height, angle_a=a, angle_b=b)


def local_maxima(plane: np.ndarray) -> list[tuple[int, int]]:
    """Interior cells strictly greater than all eight neighbours.

    Coordinates are returned relative to the interior, i.e. shifted by -1.
    """
    plane = np.asarray(plane)
    rows, cols = plane.shape
    if rows < 3 or cols < 3:
        return []
    center = plane[1:-1, 1:-1]
    mask = np.ones(center.shape, dtype=bool)
    for di in (-1, 0, 1):
        for dj in (-1, 0, 1):
            if di == 0 and dj == 0:
                continue
            neighbour = plane[1 + di : rows - 1 + di, 1 + dj : cols - 1 + dj]
            mask &= center > neighbour
    return [(int(i), int(j)) for i, j in zip(*np.nonzero(mask))]


def find_starting_points(
    width: int,
    depth: int,
    offset: Tuple[int, int],
    scale: float,
    seed: int,
    stream_factory: Optional[StreamFactory] = None,
) -> list[tuple[int, int]]:
    """Worm start points: strict local maxima of a one-octave noise plane."""
    plane = generate_plane(
        width + 2,
        depth + 2,
        offset,
        scale,
        1,
        1.0,
        1.0,
        sub_seed(seed, STARTING_POINT_SEED_MULTIPLIER),
        stream_factory,
    )
    return local_maxima(plane)


def _direction(pitch: float, yaw: float) -> Point3:
    pitch_rad = math.radians(pitch)
    yaw_rad = math.radians(yaw)
    cos_pitch = math.cos(pitch_rad)
    return (
        math.sin(yaw_rad) * cos_pitch,
        -math.sin(pitch_rad),
        math.cos(yaw_rad) * cos_pitch,
    )


def walk_worm(
    start: Tuple[int, int],
    draws: WormDraws,
    stream: DrawStream,
    height: int,
    max_worm_range: float,
) -> tuple[list[Point3], float]:
    """Run the survival-gated walk; return the trajectory and bbox diagonal squared."""
    ax, ay = draws.angle_a
    bx, by = draws.angle_b
    pitch = lerp(MIN_PITCH, MAX_PITCH, perlin01(ax, bx))
    yaw = lerp(-180.0, 180.0, perlin01(ay, by))

    x, y, z = float(start[0]), float(draws.start_height), float(start[1])
    trajectory: list[Point3] = [(x, y, z)]
    survival = 1.0
    min_x = max_x = x
    min_z = max_z = z
    range_sq = max_worm_range * max_worm_range

    def spread_sq() -> float:
        return (max_x - min_x) ** 2 + (max_z - min_z) ** 2

    # Short-circuit order matters: no survival roll is drawn once y <= 0.
    while y > 0 and survival > stream.uniform() and spread_sq() < range_sq:
        dx, dy, dz = _direction(pitch, yaw)
        x += dx * STEP_LENGTH
        y += dy * STEP_LENGTH
        z += dz * STEP_LENGTH
        trajectory.append((x, y, z))

        pitch_change = lerp(-MAX_PITCH_CHANGE, MAX_PITCH_CHANGE, perlin01(ax, bx))
        yaw_change = lerp(-MAX_YAW_CHANGE, MAX_YAW_CHANGE, perlin01(ay, by))
        pitch = min(max(pitch + pitch_change, MIN_PITCH), MAX_PITCH)
        yaw += yaw_change

        ax += NOISE_STEP_A[0]
        ay += NOISE_STEP_A[1]
        bx += NOISE_STEP_B[0]
        by += NOISE_STEP_B[1]

        survival *= SURVIVAL_DECAY + SURVIVAL_HEIGHT_BONUS * y / height

        min_x = min(min_x, x)
        max_x = max(max_x, x)
        min_z = min(min_z, z)
        max_z = max(max_z, z)

    return trajectory, spread_sq()


def plan_worms(
    starting_points: Iterable[Tuple[int, int]],
    height: int,
    offset: Tuple[int, int],
    scale: float,
    max_radius: float,
    min_worm_length: int,
    max_worm_range: float,
    seed: int,
    stream_factory: Optional[StreamFactory] = None,
) -> list[Worm]:
    """Simulate one worm per start point and keep the ones that pass the filters.

    ``scale`` is accepted for parity with the start-point search; the walk
    samples its turning noise at fixed rates.
    """
    if height <= 0:
        raise ValueError(f"Worm volume height must be positive, got {height}")
    factory = stream_factory or default_stream
    range_sq = max_worm_range * max_worm_range
    worms: list[Worm] = []
    for point in starting_points:
        stream = factory(worm_seed(point, offset, seed))
        draws = WormDraws.take(stream, max_radius, height)
        trajectory, spread = walk_worm(point, draws, stream, height, max_worm_range)
        # Worms that reach the range limit probably continue past the window.
        if spread >= range_sq:
            continue
        if len(trajectory) <= min_worm_length:
            continue
        worms.append(Worm(trajectory=tuple(trajectory), max_radius=draws.max_radius))
    return worms


def worms_from_arrays(
    worm_ids: Sequence[int],
    points: np.ndarray,
    radii: Sequence[float],
) -> list[Worm]:
    """Rebuild worms from flat (worm id, point) rows ordered by worm then step."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    ids = np.asarray(worm_ids, dtype=np.int64)
    worms: list[Worm] = []
    for index, radius in enumerate(radii):
        rows = points[ids == index]
        trajectory = tuple((float(px), float(py), float(pz)) for px, py, pz in rows)
        worms.append(Worm(trajectory=trajectory, max_radius=float(radius)))
    return worms


__all__ = [
    "Worm",
    "WormDraws",
    "find_starting_points",
    "local_maxima",
    "plan_worms",
    "walk_worm",
    "worms_from_arrays",
]
