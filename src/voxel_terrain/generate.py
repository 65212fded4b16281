"""One-shot terrain generation without the caching pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import numpy as np

from .core.carving import carve
from .core.mesher import ChunkMesh, mesh
from .core.noise import generate_plane
from .core.params import TerrainParams
from .core.random import StreamFactory
from .core.terrain import VoxelGrid, compose
from .core.worms import Worm, find_starting_points, plan_worms


@dataclass(frozen=True)
class TerrainResult:
    height_noise: np.ndarray
    starting_points: list[tuple[int, int]]
    worms: list[Worm]
    cave_volume: np.ndarray
    grid: VoxelGrid
    meshes: list[ChunkMesh]
    stats: Dict[str, Any] = field(default_factory=dict)


def make_height_noise(params: TerrainParams, stream_factory: Optional[StreamFactory] = None) -> np.ndarray:
    noise = params.terrain_noise
    side = params.geometry.side_length
    return generate_plane(
        side,
        side,
        params.terrain_offset,
        noise.scale,
        noise.octaves,
        noise.lacunarity,
        noise.persistence,
        params.geometry.seed,
        stream_factory,
    )


def make_worms(
    params: TerrainParams, stream_factory: Optional[StreamFactory] = None
) -> tuple[list[tuple[int, int]], list[Worm]]:
    caves = params.caves
    window = params.worm_window
    seed = params.geometry.seed
    points = find_starting_points(window, window, params.cave_offset, caves.scale, seed, stream_factory)
    worms = plan_worms(
        points,
        params.volume_height,
        params.cave_offset,
        caves.scale,
        caves.max_radius,
        caves.min_worm_length,
        params.padding_length,
        seed,
        stream_factory,
    )
    return points, worms


def make_cave_volume(params: TerrainParams, worms: list[Worm]) -> np.ndarray:
    window = params.worm_window
    return carve(
        worms,
        window,
        params.volume_height,
        window,
        params.caves.min_radius,
        params.caves.radius_noise_ratio,
    )


def mesh_stats(meshes: list[ChunkMesh]) -> Dict[str, int]:
    return {
        "chunks": len(meshes),
        "faces": sum(chunk.face_count for chunk in meshes),
        "vertices": sum(chunk.vertex_count for chunk in meshes),
        "triangles": sum(chunk.triangle_count for chunk in meshes),
    }


def generate_terrain(
    params: TerrainParams | Mapping[str, Any] | None = None,
    *,
    stream_factory: Optional[StreamFactory] = None,
) -> TerrainResult:
    """Run every generation step in order and return all intermediate products."""
    if not isinstance(params, TerrainParams):
        params = TerrainParams.from_mapping(params)

    height_noise = make_height_noise(params, stream_factory)
    points, worms = make_worms(params, stream_factory)
    cave_volume = make_cave_volume(params, worms)
    grid = compose(height_noise, cave_volume, params.compose_params())
    meshes = mesh(grid, params.geometry.chunk_size)

    stats = {
        "starting_points": len(points),
        "worms": len(worms),
        "carved_cells": int(cave_volume.size - np.count_nonzero(cave_volume)),
        "active_voxels": grid.active_count(),
        **mesh_stats(meshes),
    }
    return TerrainResult(
        height_noise=height_noise,
        starting_points=points,
        worms=worms,
        cave_volume=cave_volume,
        grid=grid,
        meshes=meshes,
        stats=stats,
    )


__all__ = [
    "TerrainResult",
    "generate_terrain",
    "make_cave_volume",
    "make_height_noise",
    "make_worms",
    "mesh_stats",
]
