from __future__ import annotations

import numpy as np
import pytest

from voxel_terrain.core.carving import carve, sample_radius, taper
from voxel_terrain.core.worms import Worm


def _line_worm(start, length, max_radius=3.0):
    x, y, z = start
    return Worm(trajectory=tuple((x + i, y, z) for i in range(length)), max_radius=max_radius)


def test_taper_vanishes_at_both_ends():
    assert taper(0, 9) == 0.0
    assert taper(8, 9) == pytest.approx(0.0)
    assert taper(4, 9) == pytest.approx(1.0)
    assert taper(0, 1) == 0.0


def test_zero_noise_ratio_gives_min_radius_at_ends():
    worm = _line_worm((4.0, 4.0, 4.0), 7, max_radius=3.0)
    assert sample_radius(worm, 0, 1.0, 0.0) == pytest.approx(1.0)
    assert sample_radius(worm, 6, 1.0, 0.0) == pytest.approx(1.0)
    assert sample_radius(worm, 3, 1.0, 0.0) == pytest.approx(3.0)


def test_noise_ratio_is_clamped():
    worm = _line_worm((4.3, 2.1, 7.7), 5)
    assert sample_radius(worm, 2, 1.0, 4.0) == pytest.approx(sample_radius(worm, 2, 1.0, 1.0))
    assert sample_radius(worm, 2, 1.0, -1.0) == pytest.approx(sample_radius(worm, 2, 1.0, 0.0))


def test_single_sample_carves_a_lattice_sphere():
    worm = Worm(trajectory=((5.0, 5.0, 5.0),), max_radius=2.0)
    volume = carve([worm], 11, 11, 11, 2.0, 0.0)
    assert volume.dtype == np.bool_
    assert not volume[5, 5, 5]
    assert not volume[7, 5, 5]
    assert volume[8, 5, 5]
    assert volume[7, 7, 5]
    # Lattice points with squared distance <= 4.
    assert int((~volume).sum()) == 33


def test_out_of_bounds_samples_are_ignored():
    worm = Worm(trajectory=((-20.0, -20.0, -20.0), (40.0, 40.0, 40.0)), max_radius=2.0)
    volume = carve([worm], 6, 6, 6, 1.0, 0.0)
    assert volume.all()


def test_carving_is_monotonic_and_order_independent():
    a = _line_worm((2.0, 3.0, 2.0), 8)
    b = _line_worm((3.0, 6.0, 9.0), 6, max_radius=2.5)
    only_a = carve([a], 16, 12, 16, 1.0, 0.5)
    both = carve([a, b], 16, 12, 16, 1.0, 0.5)
    reversed_order = carve([b, a], 16, 12, 16, 1.0, 0.5)

    np.testing.assert_array_equal(both, reversed_order)
    # Cells carved by a alone stay carved once b is added.
    assert not (both & ~only_a).any()
    assert (~both).sum() >= (~only_a).sum()


def test_no_worms_leaves_volume_solid():
    assert carve([], 4, 3, 5, 1.0, 0.5).all()
