"""Voxel grid model and terrain composition from height noise and caves."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from .curves import AdjustmentCurve, linear

Color = Tuple[int, int, int, int]
Vec3 = Tuple[float, float, float]

# Corner order: front face (z-) clockwise from bottom-left, then the back face (z+).
CORNER_SIGNS = np.array(
    [
        (-1, -1, -1),
        (-1, 1, -1),
        (1, 1, -1),
        (1, -1, -1),
        (-1, -1, 1),
        (-1, 1, 1),
        (1, 1, 1),
        (1, -1, 1),
    ],
    dtype=np.float32,
)


def cube_corners(position: Vec3, cube_size: float) -> np.ndarray:
    """The eight ``(8, 3)`` corners of an axis-aligned cube centred on ``position``."""
    center = np.asarray(position, dtype=np.float32)
    return center + CORNER_SIGNS * np.float32(cube_size / 2.0)


@dataclass(frozen=True)
class Voxel:
    active: bool
    position: Vec3
    color: Color
    cube_size: float = 1.0

    @property
    def corners(self) -> np.ndarray:
        return cube_corners(self.position, self.cube_size)


@dataclass(frozen=True)
class VoxelGrid:
    """Dense ``(W, H, D)`` voxel buffers, row-major with x slowest."""

    active: np.ndarray
    colors: np.ndarray
    cube_size: float = 1.0

    def __post_init__(self) -> None:
        if self.active.ndim != 3:
            raise ValueError(f"active must be 3-D, got shape {self.active.shape}")
        if self.colors.shape != self.active.shape + (4,):
            raise ValueError(
                f"colors shape {self.colors.shape} does not match active shape {self.active.shape}"
            )

    @classmethod
    def empty(cls, width: int, height: int, depth: int, cube_size: float = 1.0) -> "VoxelGrid":
        return cls(
            active=np.zeros((width, height, depth), dtype=bool),
            colors=np.zeros((width, height, depth, 4), dtype=np.uint8),
            cube_size=cube_size,
        )

    @property
    def shape(self) -> Tuple[int, int, int]:
        width, height, depth = self.active.shape
        return int(width), int(height), int(depth)

    def in_bounds(self, x: int, y: int, z: int) -> bool:
        width, height, depth = self.shape
        return 0 <= x < width and 0 <= y < height and 0 <= z < depth

    def index(self, x: int, y: int, z: int) -> int:
        if not self.in_bounds(x, y, z):
            raise IndexError(f"Voxel ({x}, {y}, {z}) outside grid {self.shape}")
        _, height, depth = self.shape
        return (x * height + y) * depth + z

    def is_active(self, x: int, y: int, z: int) -> bool:
        return self.in_bounds(x, y, z) and bool(self.active[x, y, z])

    def position(self, x: int, y: int, z: int) -> Vec3:
        width, _, depth = self.shape
        size = self.cube_size
        return (
            -width * size / 2.0 + (x + 0.5) * size,
            (y + 0.5) * size,
            -depth * size / 2.0 + (z + 0.5) * size,
        )

    def positions(self) -> np.ndarray:
        """Centres of every cell as a ``(W, H, D, 3)`` float32 array."""
        width, height, depth = self.shape
        size = self.cube_size
        xs = -width * size / 2.0 + (np.arange(width) + 0.5) * size
        ys = (np.arange(height) + 0.5) * size
        zs = -depth * size / 2.0 + (np.arange(depth) + 0.5) * size
        grid = np.stack(np.meshgrid(xs, ys, zs, indexing="ij"), axis=-1)
        return grid.astype(np.float32)

    def voxel(self, x: int, y: int, z: int) -> Voxel:
        if not self.in_bounds(x, y, z):
            raise IndexError(f"Voxel ({x}, {y}, {z}) outside grid {self.shape}")
        color = tuple(int(c) for c in self.colors[x, y, z])
        return Voxel(
            active=bool(self.active[x, y, z]),
            position=self.position(x, y, z),
            color=color,  # type: ignore[arg-type]
            cube_size=self.cube_size,
        )

    def active_count(self) -> int:
        return int(np.count_nonzero(self.active))


@dataclass(frozen=True)
class ComposeParams:
    max_cube_height: int
    base_cube_height: int
    cube_size: float = 1.0
    padding: int = 0
    only_caves: bool = False
    surface_color: Color = (96, 160, 64, 255)
    below_surface_color: Color = (120, 96, 72, 255)
    cave_color: Color = (90, 90, 110, 255)
    adjustment_curve: AdjustmentCurve = field(default=linear, compare=False)


def relative_heights(height_noise: np.ndarray, params: ComposeParams) -> np.ndarray:
    """Per-column surface offset above ``base_cube_height``."""
    span = params.max_cube_height - params.base_cube_height
    curve = params.adjustment_curve
    adjusted = np.array(
        [curve(float(value)) for value in np.asarray(height_noise, dtype=np.float64).ravel()],
        dtype=np.float64,
    ).reshape(np.shape(height_noise))
    # np.rint rounds halves to even.
    relative = np.rint(adjusted * span).astype(np.int64)
    return np.clip(relative, 0, span)


def compose(height_noise: np.ndarray, cave_volume: np.ndarray, params: ComposeParams) -> VoxelGrid:
    """Combine the height field with the carved volume into a voxel grid."""
    width, depth = np.shape(height_noise)
    height = params.max_cube_height + 1
    pad = params.padding
    if params.base_cube_height > params.max_cube_height:
        raise ValueError("base_cube_height cannot exceed max_cube_height")
    needed = (width + 2 * pad, height, depth + 2 * pad)
    if any(have < need for have, need in zip(cave_volume.shape, needed)):
        raise ValueError(f"Cave volume {cave_volume.shape} does not cover terrain window {needed}")

    solid = np.asarray(cave_volume[pad : pad + width, :height, pad : pad + depth], dtype=bool)
    grid = VoxelGrid.empty(width, height, depth, params.cube_size)
    active = np.array(grid.active)
    colors = np.array(grid.colors)

    if params.only_caves:
        active[...] = solid
        colors[active] = params.cave_color
    else:
        surface = params.base_cube_height + relative_heights(height_noise, params)
        ys = np.arange(height)[None, :, None]
        tops = surface[:, None, :]
        active[...] = solid & (ys <= tops)
        colors[active & (ys == tops)] = params.surface_color
        colors[active & (ys < tops)] = params.below_surface_color

    return VoxelGrid(active=active, colors=colors, cube_size=params.cube_size)


__all__ = [
    "CORNER_SIGNS",
    "ComposeParams",
    "Voxel",
    "VoxelGrid",
    "compose",
    "cube_corners",
    "relative_heights",
]
