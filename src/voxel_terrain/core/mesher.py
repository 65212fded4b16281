"""Chunked, neighbour-culled surface meshing of a voxel grid."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Iterator, Tuple

import numpy as np

from .terrain import CORNER_SIGNS, VoxelGrid

# Neighbour offsets (dx, dy, dz) in face order: front, back, left, right, bottom, top.
FACE_NEIGHBOURS = np.array(
    [
        (0, 0, -1),
        (0, 0, 1),
        (-1, 0, 0),
        (1, 0, 0),
        (0, -1, 0),
        (0, 1, 0),
    ],
    dtype=np.int64,
)

# Corner indices per face, wound so that (v1 - v0) x (v3 - v0) points outward.
FACE_CORNERS = np.array(
    [
        (0, 1, 2, 3),
        (7, 6, 5, 4),
        (4, 5, 1, 0),
        (3, 2, 6, 7),
        (0, 3, 7, 4),
        (1, 5, 6, 2),
    ],
    dtype=np.int64,
)

# Two triangles per quad sharing the 1-3 diagonal.
QUAD_TRIANGLES = np.array((0, 1, 3, 3, 1, 2), dtype=np.int32)


@dataclass(frozen=True)
class ChunkMesh:
    chunk: Tuple[int, int]
    vertices: np.ndarray
    triangles: np.ndarray
    colors: np.ndarray

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.triangles.shape[0] // 3)

    @property
    def face_count(self) -> int:
        return self.vertex_count // 4

    @classmethod
    def empty(cls, chunk: Tuple[int, int]) -> "ChunkMesh":
        return cls(
            chunk=chunk,
            vertices=np.zeros((0, 3), dtype=np.float32),
            triangles=np.zeros((0,), dtype=np.int32),
            colors=np.zeros((0, 4), dtype=np.uint8),
        )


def chunk_counts(grid: VoxelGrid, chunk_size: int) -> Tuple[int, int]:
    """Chunks along x and z; a trailing partial chunk counts as a chunk."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    width, _, depth = grid.shape
    return math.ceil(width / chunk_size), math.ceil(depth / chunk_size)


def exposed_faces(active: np.ndarray, xs: np.ndarray, ys: np.ndarray, zs: np.ndarray) -> np.ndarray:
    """``(n, 6)`` mask of faces whose neighbour is inactive or out of bounds."""
    padded = np.pad(active, 1, mode="constant", constant_values=False)
    exposed = np.empty((xs.shape[0], 6), dtype=bool)
    for face, (dx, dy, dz) in enumerate(FACE_NEIGHBOURS):
        exposed[:, face] = ~padded[xs + 1 + dx, ys + 1 + dy, zs + 1 + dz]
    return exposed


def mesh_chunk(grid: VoxelGrid, cx: int, cz: int, chunk_size: int) -> ChunkMesh:
    """Mesh the voxels of one chunk column, consulting the whole grid for neighbours."""
    width, height, depth = grid.shape
    x0, x1 = cx * chunk_size, min((cx + 1) * chunk_size, width)
    z0, z1 = cz * chunk_size, min((cz + 1) * chunk_size, depth)
    if x1 <= x0 or z1 <= z0 or height == 0:
        return ChunkMesh.empty((cx, cz))

    # Visit order: x, then z, then y.
    xi, zi, yi = np.meshgrid(
        np.arange(x0, x1), np.arange(z0, z1), np.arange(height), indexing="ij"
    )
    xs, ys, zs = xi.ravel(), yi.ravel(), zi.ravel()
    keep = grid.active[xs, ys, zs]
    xs, ys, zs = xs[keep], ys[keep], zs[keep]
    if xs.size == 0:
        return ChunkMesh.empty((cx, cz))

    exposed = exposed_faces(grid.active, xs, ys, zs)
    voxel_idx, face_idx = np.nonzero(exposed)
    if voxel_idx.size == 0:
        return ChunkMesh.empty((cx, cz))

    size = grid.cube_size
    centers = np.stack(
        (
            -width * size / 2.0 + (xs[voxel_idx] + 0.5) * size,
            (ys[voxel_idx] + 0.5) * size,
            -depth * size / 2.0 + (zs[voxel_idx] + 0.5) * size,
        ),
        axis=-1,
    ).astype(np.float32)
    corners = centers[:, None, :] + CORNER_SIGNS[None, :, :] * np.float32(size / 2.0)
    face_corners = FACE_CORNERS[face_idx]
    rows = np.arange(voxel_idx.size)[:, None]
    vertices = corners[rows, face_corners].reshape(-1, 3).astype(np.float32)

    base = (np.arange(voxel_idx.size, dtype=np.int32) * 4)[:, None]
    triangles = (base + QUAD_TRIANGLES[None, :]).reshape(-1).astype(np.int32)

    voxel_colors = grid.colors[xs[voxel_idx], ys[voxel_idx], zs[voxel_idx]]
    colors = np.repeat(voxel_colors, 4, axis=0).astype(np.uint8)

    return ChunkMesh(chunk=(cx, cz), vertices=vertices, triangles=triangles, colors=colors)


def iter_chunks(grid: VoxelGrid, chunk_size: int) -> Iterator[Tuple[int, int]]:
    count_x, count_z = chunk_counts(grid, chunk_size)
    for cx in range(count_x):
        for cz in range(count_z):
            yield cx, cz


def mesh(grid: VoxelGrid, chunk_size: int) -> list[ChunkMesh]:
    """One :class:`ChunkMesh` per horizontal chunk, x-major."""
    return [mesh_chunk(grid, cx, cz, chunk_size) for cx, cz in iter_chunks(grid, chunk_size)]


__all__ = [
    "ChunkMesh",
    "FACE_CORNERS",
    "FACE_NEIGHBOURS",
    "QUAD_TRIANGLES",
    "chunk_counts",
    "exposed_faces",
    "iter_chunks",
    "mesh",
    "mesh_chunk",
]
