"""Stage 4 – combine height noise and carved volume into voxels."""

from __future__ import annotations

from typing import Any, Mapping, Optional

import numpy as np

from ...core.curves import curve_from_config
from ...core.params import parse_color
from ...core.terrain import ComposeParams, VoxelGrid, compose
from ..registry import stage
from ..visualization import VisualizationRequest, VisualizationResult, top_down_colors, write_png
from .cave_carver import STAGE_NAME as CARVE_STAGE
from .noise_field import STAGE_NAME as NOISE_STAGE

STAGE_NAME = "terrain_composer"

_DEFAULTS = ComposeParams(max_cube_height=32, base_cube_height=8)


def compose_params_from_mapping(mapping: Mapping[str, Any]) -> ComposeParams:
    return ComposeParams(
        max_cube_height=int(mapping.get("max_cube_height", _DEFAULTS.max_cube_height)),
        base_cube_height=int(mapping.get("base_cube_height", _DEFAULTS.base_cube_height)),
        cube_size=float(mapping.get("cube_size", _DEFAULTS.cube_size)),
        padding=int(mapping.get("padding", _DEFAULTS.padding)),
        only_caves=bool(mapping.get("only_caves", _DEFAULTS.only_caves)),
        surface_color=parse_color(mapping.get("surface_color", _DEFAULTS.surface_color), "surface_color"),
        below_surface_color=parse_color(
            mapping.get("below_surface_color", _DEFAULTS.below_surface_color), "below_surface_color"
        ),
        cave_color=parse_color(mapping.get("cave_color", _DEFAULTS.cave_color), "cave_color"),
        adjustment_curve=curve_from_config(mapping.get("adjustment_curve")),
    )


def grid_from_artifacts(result, cube_size: float) -> VoxelGrid:
    """Rebuild the :class:`VoxelGrid` from a composer result."""
    return VoxelGrid(
        active=result.artifact("VoxelActive").array(),
        colors=result.artifact("VoxelColors").array(),
        cube_size=cube_size,
    )


def _terrain_visualizer(result, request: VisualizationRequest) -> Optional[VisualizationResult]:
    active = result.artifact_records.get("VoxelActive")
    colors = result.artifact_records.get("VoxelColors")
    if not active or active.value is None or not colors or colors.value is None:
        return None
    image = top_down_colors(active.array(), colors.array())
    return write_png(request.output_dir / "top_down.png", image, artifact_name="VoxelColors")


@stage(
    STAGE_NAME,
    inputs=(NOISE_STAGE, CARVE_STAGE),
    outputs=("VoxelActive", "VoxelColors", "TerrainMetadata"),
    visualizer=_terrain_visualizer,
)
def terrain_composer_stage(context, deps, config_mapping):
    """Active flags and colours for every cell of the terrain window."""
    params = compose_params_from_mapping(config_mapping or {})
    height_noise = deps[NOISE_STAGE].artifact("HeightNoise").array()
    solid = deps[CARVE_STAGE].artifact("SolidVolume").array()

    with context.timed("compose_terrain"):
        grid = compose(height_noise, solid, params)

    active_handle = context.arena.adopt("terrain_voxel_active", grid.active)
    colors_handle = context.arena.adopt("terrain_voxel_colors", grid.colors)

    width, height, depth = grid.shape
    active_count = grid.active_count()
    metadata = {
        "shape": [width, height, depth],
        "cube_size": params.cube_size,
        "only_caves": params.only_caves,
        "active_voxels": active_count,
        "active_fraction": float(active_count / grid.active.size) if grid.active.size else 0.0,
        "column_height_max": int(np.max(np.nonzero(grid.active)[1]) + 1) if active_count else 0,
    }
    context.logger.log_summary(STAGE_NAME, "terrain_summary", active_voxels=active_count)
    return {"VoxelActive": active_handle, "VoxelColors": colors_handle, "TerrainMetadata": metadata}


__all__ = [
    "STAGE_NAME",
    "compose_params_from_mapping",
    "grid_from_artifacts",
    "terrain_composer_stage",
]
