"""Stage 3 – carve worms into the solid volume."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import numpy as np

from ...core.carving import carve_into, clamp_ratio
from ..registry import stage
from ..visualization import VisualizationRequest, VisualizationResult, normalize_to_u8, write_png
from .worm_planner import STAGE_NAME as WORM_STAGE, worms_from_tables

STAGE_NAME = "cave_carver"


@dataclass(frozen=True)
class CaveCarverConfig:
    width: int = 96
    height: int = 33
    depth: int = 96
    min_radius: float = 1.0
    radius_noise_ratio: float = 0.5

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CaveCarverConfig":
        if not mapping:
            return cls()
        return cls(
            width=int(mapping.get("width", cls.width)),
            height=int(mapping.get("height", cls.height)),
            depth=int(mapping.get("depth", cls.depth)),
            min_radius=float(mapping.get("min_radius", cls.min_radius)),
            radius_noise_ratio=clamp_ratio(mapping.get("radius_noise_ratio", cls.radius_noise_ratio)),
        )


def _carve_visualizer(result, request: VisualizationRequest) -> Optional[VisualizationResult]:
    record = result.artifact_records.get("SolidVolume")
    if not record or record.value is None:
        return None
    solid = record.array()
    carved_per_column = (~solid).sum(axis=1)
    return write_png(request.output_dir / "carved_columns.png", normalize_to_u8(carved_per_column.T), "SolidVolume")


@stage(
    STAGE_NAME,
    inputs=(WORM_STAGE,),
    outputs=("SolidVolume", "CarveMetadata"),
    visualizer=_carve_visualizer,
)
def cave_carver_stage(context, deps, config_mapping):
    """Union of every worm's per-sample spheres, cleared from an all-solid volume."""
    config = CaveCarverConfig.from_mapping(config_mapping)
    planner = deps[WORM_STAGE]
    worms = worms_from_tables(
        planner.artifact("WormTrajectories").value,
        planner.artifact("WormRadii").value,
    )

    handle = context.arena.allocate_volume(
        "cave_solid_volume", (config.width, config.height, config.depth), dtype=np.bool_
    )
    volume = handle.mutable_view()
    volume[...] = True
    with context.timed("carve_worms"):
        carve_into(volume, worms, config.min_radius, config.radius_noise_ratio)
    handle.seal()

    carved = int(volume.size - np.count_nonzero(volume))
    metadata = {
        "shape": [config.width, config.height, config.depth],
        "worms": len(worms),
        "carved_cells": carved,
        "carved_fraction": float(carved / volume.size) if volume.size else 0.0,
        "min_radius": config.min_radius,
        "radius_noise_ratio": config.radius_noise_ratio,
    }
    context.logger.log_summary(STAGE_NAME, "carve_summary", worms=len(worms), carved_cells=carved)
    return {"SolidVolume": handle, "CarveMetadata": metadata}


__all__ = ["CaveCarverConfig", "STAGE_NAME", "cave_carver_stage"]
