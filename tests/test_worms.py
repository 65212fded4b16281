from __future__ import annotations

import math

import numpy as np
import pytest

from voxel_terrain.core.noise import generate_plane
from voxel_terrain.core.random import PcgDrawStream, sub_seed, worm_seed, wrap_int32
from voxel_terrain.core.worms import (
    MAX_PITCH,
    MIN_PITCH,
    STARTING_POINT_SEED_MULTIPLIER,
    STEP_LENGTH,
    Worm,
    WormDraws,
    find_starting_points,
    local_maxima,
    plan_worms,
    walk_worm,
    worms_from_arrays,
)


class ScriptedStream:
    """Replays fixed uniforms and returns zero for every integer draw."""

    def __init__(self, uniforms: list[float]) -> None:
        self._uniforms = list(uniforms)
        self.uniform_calls = 0

    def uniform(self) -> float:
        self.uniform_calls += 1
        return self._uniforms.pop(0) if self._uniforms else 1.0

    def integer(self, low: int, high: int) -> int:
        return 0


def test_local_maxima_single_peak():
    plane = np.zeros((5, 5))
    plane[2, 2] = 1.0
    assert local_maxima(plane) == [(1, 1)]


def test_local_maxima_ignores_plateaus_and_border():
    plane = np.zeros((6, 6))
    plane[2, 2] = plane[2, 3] = 1.0
    plane[0, 0] = 5.0
    assert local_maxima(plane) == []


def test_local_maxima_row_major_order():
    plane = np.zeros((7, 7))
    plane[5, 1] = 1.0
    plane[1, 5] = 1.0
    plane[3, 3] = 1.0
    assert local_maxima(plane) == [(0, 4), (2, 2), (4, 0)]


def test_starting_points_lie_inside_window():
    points = find_starting_points(20, 12, (0, 0), 1.0, 5)
    assert points == find_starting_points(20, 12, (0, 0), 1.0, 5)
    assert all(0 <= i < 20 and 0 <= j < 12 for i, j in points)


def test_worm_seed_mixing():
    assert worm_seed((0, 0), (0, 0), 0) == 0
    assert worm_seed((1, 2), (0, 0), 5) == worm_seed((0, 0), (1, 2), 5)
    value = worm_seed((40000, -9000), (123456, 789), 2**31 - 1)
    assert -(2**31) <= value < 2**31


def test_int32_wrapping():
    assert wrap_int32(2**31) == -(2**31)
    assert wrap_int32(-(2**31) - 1) == 2**31 - 1
    assert sub_seed(1, 169259) == 169259
    assert PcgDrawStream(-1).seed == 0xFFFFFFFF


def test_first_step_follows_initial_heading():
    # radius roll, start-height roll, one passing survival roll, then a failing one.
    stream = ScriptedStream([1.0, 0.95, 0.0, 1.0])
    worms = plan_worms(
        [(3, 4)], 20, (0, 0), 1.0, 2.0, 0, 100.0, 0, stream_factory=lambda seed: stream
    )
    assert len(worms) == 1
    worm = worms[0]
    assert worm.max_radius == pytest.approx(2.0)
    assert len(worm) == 2
    x0, y0, z0 = worm.trajectory[0]
    assert (x0, z0) == (3.0, 4.0)
    assert y0 == float(int(0.9 * 0.9 * 21))
    # Zero angle draws sample the lattice: pitch -45, yaw 0.
    x1, y1, z1 = worm.trajectory[1]
    step = STEP_LENGTH * math.sqrt(0.5)
    assert x1 == pytest.approx(x0)
    assert y1 == pytest.approx(y0 + step)
    assert z1 == pytest.approx(z0 + step)
    assert stream.uniform_calls == 4


def test_worms_at_or_below_min_length_are_dropped():
    def factory(seed):
        return ScriptedStream([1.0, 0.95, 0.0, 1.0])

    assert len(plan_worms([(0, 0)], 20, (0, 0), 1.0, 2.0, 1, 100.0, 0, factory)) == 1
    assert plan_worms([(0, 0)], 20, (0, 0), 1.0, 2.0, 2, 100.0, 0, factory) == []


def test_worms_reaching_range_limit_are_dropped():
    points = find_starting_points(16, 16, (0, 0), 1.0, 3)
    assert plan_worms(points, 9, (0, 0), 1.0, 3.0, 0, 0.0, 3) == []


def test_plan_worms_rejects_empty_volume():
    with pytest.raises(ValueError):
        plan_worms([(1, 1)], 0, (0, 0), 1.0, 3.0, 2, 16.0, 0)


def test_plan_worms_is_deterministic():
    points = find_starting_points(24, 24, (2, 3), 1.0, 9)
    first = plan_worms(points, 17, (2, 3), 1.0, 3.0, 2, 16.0, 9)
    second = plan_worms(points, 17, (2, 3), 1.0, 3.0, 2, 16.0, 9)
    assert first == second
    for worm in first:
        assert len(worm) > 2
        assert 0.4 * 3.0 <= worm.max_radius <= 3.0


def test_worms_from_arrays_rebuilds_trajectories():
    worms = [
        Worm(trajectory=((0.0, 1.0, 2.0), (1.0, 2.0, 3.0)), max_radius=2.0),
        Worm(trajectory=((5.0, 5.0, 5.0),), max_radius=1.5),
    ]
    ids = [0, 0, 1]
    points = np.concatenate([worm.as_array() for worm in worms])
    assert worms_from_arrays(ids, points, [2.0, 1.5]) == worms


@pytest.mark.parametrize("seed", [0, 5, 42, -7, 90210])
def test_starting_points_beat_all_eight_neighbours(seed):
    width, depth = 18, 14
    plane = generate_plane(
        width + 2, depth + 2, (3, -2), 1.0, 1, 1.0, 1.0, sub_seed(seed, STARTING_POINT_SEED_MULTIPLIER)
    )
    points = find_starting_points(width, depth, (3, -2), 1.0, seed)

    expected = []
    for i in range(width):
        for j in range(depth):
            window = plane[i : i + 3, j : j + 3]
            center = window[1, 1]
            others = np.delete(window.ravel(), 4)
            if (center > others).all():
                expected.append((i, j))
    assert points == expected


def _draws(start_height: int, angle_a=(12.5, -3.25), angle_b=(7.75, 40.125)) -> WormDraws:
    return WormDraws(max_radius=2.0, start_height=start_height, angle_a=angle_a, angle_b=angle_b)


@pytest.mark.parametrize(
    "angle_a, angle_b",
    [((0.0, 0.0), (0.0, 0.0)), ((12.5, -3.25), (7.75, 40.125)), ((-918.3, 77.1), (503.9, -2.6))],
)
def test_pitch_stays_within_bounds_for_every_step(angle_a, angle_b):
    stream = ScriptedStream([0.0] * 80 + [1.0])
    trajectory, _ = walk_worm((0, 0), _draws(5, angle_a, angle_b), stream, 1000, 1.0e6)
    assert len(trajectory) == 81

    low = STEP_LENGTH * math.sin(math.radians(-MAX_PITCH))
    high = STEP_LENGTH * math.sin(math.radians(-MIN_PITCH))
    for (x0, y0, z0), (x1, y1, z1) in zip(trajectory, trajectory[1:]):
        rise = y1 - y0
        assert low - 1e-9 <= rise <= high + 1e-9
        assert math.hypot(x1 - x0, z1 - z0) == pytest.approx(math.sqrt(STEP_LENGTH**2 - rise**2), abs=1e-9)


def test_range_limit_stops_walk_part_way():
    limit = 2.0
    stream = ScriptedStream([0.0] * 2000)
    trajectory, spread = walk_worm((4, 4), _draws(3), stream, 40, limit)

    assert 2 < len(trajectory) < 2001
    assert spread >= limit * limit
    xs = [point[0] for point in trajectory[:-1]]
    zs = [point[2] for point in trajectory[:-1]]
    assert (max(xs) - min(xs)) ** 2 + (max(zs) - min(zs)) ** 2 < limit * limit
    # The final survival roll is drawn before the range check ends the walk.
    assert stream.uniform_calls == len(trajectory)


def test_survival_decays_faster_low_in_the_volume():
    rolls = [0.99] * 100 + [10.0]
    high_up, _ = walk_worm((0, 0), _draws(1900), ScriptedStream(rolls), 2000, 1.0e6)
    low_down, _ = walk_worm((0, 0), _draws(15), ScriptedStream(rolls), 2000, 1.0e6)

    assert len(high_up) == 101
    assert len(low_down) < 30
