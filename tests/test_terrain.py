from __future__ import annotations

import numpy as np
import pytest

from voxel_terrain.core.curves import smoothstep
from voxel_terrain.core.terrain import ComposeParams, VoxelGrid, compose, cube_corners, relative_heights

SURFACE = (10, 200, 10, 255)
BELOW = (120, 80, 40, 255)
CAVE = (50, 50, 60, 255)


def _params(**overrides) -> ComposeParams:
    base = dict(
        max_cube_height=8,
        base_cube_height=2,
        surface_color=SURFACE,
        below_surface_color=BELOW,
        cave_color=CAVE,
    )
    base.update(overrides)
    return ComposeParams(**base)


def test_grid_index_and_bounds():
    grid = VoxelGrid.empty(3, 4, 5)
    assert grid.index(0, 0, 0) == 0
    assert grid.index(0, 0, 1) == 1
    assert grid.index(0, 1, 0) == 5
    assert grid.index(1, 0, 0) == 20
    assert grid.index(2, 3, 4) == 59
    with pytest.raises(IndexError):
        grid.index(3, 0, 0)
    assert grid.is_active(-1, 0, 0) is False
    assert grid.is_active(0, 4, 0) is False


def test_grid_rejects_mismatched_buffers():
    with pytest.raises(ValueError):
        VoxelGrid(active=np.zeros((2, 2, 2), dtype=bool), colors=np.zeros((2, 2, 3, 4), dtype=np.uint8))


def test_voxel_positions_and_corners():
    grid = VoxelGrid.empty(4, 2, 6, cube_size=2.0)
    assert grid.position(0, 0, 0) == pytest.approx((-3.0, 1.0, -5.0))
    assert grid.position(3, 1, 5) == pytest.approx((3.0, 3.0, 5.0))
    np.testing.assert_allclose(grid.positions()[3, 1, 5], (3.0, 3.0, 5.0))

    corners = grid.voxel(0, 0, 0).corners
    assert corners.shape == (8, 3)
    np.testing.assert_allclose(corners[0], (-4.0, 0.0, -6.0))
    np.testing.assert_allclose(corners[6], (-2.0, 2.0, -4.0))
    np.testing.assert_allclose(cube_corners((0.0, 0.0, 0.0), 1.0)[1], (-0.5, 0.5, -0.5))


def test_relative_heights_round_half_to_even():
    heights = relative_heights(np.array([[0.0, 0.5, 1.0]]), _params(max_cube_height=7, base_cube_height=2))
    assert heights.tolist() == [[0, 2, 5]]


def test_relative_heights_apply_curve():
    params = _params(adjustment_curve=smoothstep)
    heights = relative_heights(np.array([[0.25, 0.5]]), params)
    assert heights.tolist() == [[1, 3]]


def test_compose_fills_columns_up_to_surface():
    noise = np.zeros((3, 3), dtype=np.float32)
    noise[1, 1] = 1.0
    solid = np.ones((3, 9, 3), dtype=bool)
    grid = compose(noise, solid, _params())

    assert grid.shape == (3, 9, 3)
    assert grid.active[0, :, 0].tolist() == [True] * 3 + [False] * 6
    assert grid.active[1, :, 1].all()
    assert tuple(grid.colors[0, 2, 0]) == SURFACE
    assert tuple(grid.colors[0, 1, 0]) == BELOW
    assert tuple(grid.colors[1, 8, 1]) == SURFACE
    assert tuple(grid.colors[0, 5, 0]) == (0, 0, 0, 0)


def test_compose_reads_cave_volume_with_padding_offset():
    noise = np.full((2, 2), 1.0, dtype=np.float32)
    solid = np.ones((6, 9, 6), dtype=bool)
    solid[2, 4, 3] = False
    grid = compose(noise, solid, _params(padding=2))
    assert grid.shape == (2, 9, 2)
    assert not grid.active[0, 4, 1]
    assert grid.active_count() == 2 * 9 * 2 - 1


def test_only_caves_mode_shows_rock_left_after_carving():
    noise = np.zeros((2, 2), dtype=np.float32)
    solid = np.ones((2, 9, 2), dtype=bool)
    solid[0, 8, 0] = False
    grid = compose(noise, solid, _params(only_caves=True))
    assert not grid.active[0, 8, 0]
    assert grid.active[1, 8, 1]
    assert grid.active_count() == 2 * 9 * 2 - 1
    assert tuple(grid.colors[1, 8, 1]) == CAVE


def test_compose_validation():
    noise = np.zeros((2, 2), dtype=np.float32)
    with pytest.raises(ValueError):
        compose(noise, np.ones((2, 9, 2), dtype=bool), _params(base_cube_height=9))
    with pytest.raises(ValueError):
        compose(noise, np.ones((2, 4, 2), dtype=bool), _params())
    with pytest.raises(ValueError):
        compose(noise, np.ones((2, 9, 2), dtype=bool), _params(padding=1))
