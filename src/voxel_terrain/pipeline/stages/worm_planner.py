"""Stage 2 – cave worm start points and trajectories."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import numpy as np
import pyarrow as pa

from ...core.worms import Worm, find_starting_points, plan_worms, worms_from_arrays
from ..registry import stage
from ..visualization import VisualizationRequest, VisualizationResult, write_png

STAGE_NAME = "worm_planner"


@dataclass(frozen=True)
class WormPlannerConfig:
    window: int = 96
    height: int = 33
    offset: tuple[int, int] = (0, 0)
    scale: float = 1.0
    max_radius: float = 4.0
    min_worm_length: int = 8
    max_worm_range: float = 16.0
    seed: int = 0

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "WormPlannerConfig":
        if not mapping:
            return cls()
        offset = mapping.get("offset", cls.offset)
        return cls(
            window=int(mapping.get("window", cls.window)),
            height=int(mapping.get("height", cls.height)),
            offset=(int(offset[0]), int(offset[1])),
            scale=float(mapping.get("scale", cls.scale)),
            max_radius=float(mapping.get("max_radius", cls.max_radius)),
            min_worm_length=int(mapping.get("min_worm_length", cls.min_worm_length)),
            max_worm_range=float(mapping.get("max_worm_range", cls.max_worm_range)),
            seed=int(mapping.get("seed", cls.seed)),
        )


def starting_points_table(points: list[tuple[int, int]]) -> pa.Table:
    return pa.table(
        {
            "i": pa.array([p[0] for p in points], type=pa.int32()),
            "j": pa.array([p[1] for p in points], type=pa.int32()),
        }
    )


def trajectories_table(worms: list[Worm]) -> pa.Table:
    ids: list[int] = []
    steps: list[int] = []
    for worm_id, worm in enumerate(worms):
        ids.extend([worm_id] * len(worm))
        steps.extend(range(len(worm)))
    points = np.concatenate([worm.as_array() for worm in worms]) if worms else np.zeros((0, 3))
    x, y, z = (np.ascontiguousarray(points[:, axis]) for axis in range(3))
    return pa.table(
        {
            "worm": pa.array(ids, type=pa.int32()),
            "step": pa.array(steps, type=pa.int32()),
            "x": pa.array(x, type=pa.float64()),
            "y": pa.array(y, type=pa.float64()),
            "z": pa.array(z, type=pa.float64()),
        }
    )


def radii_table(worms: list[Worm]) -> pa.Table:
    return pa.table(
        {
            "worm": pa.array(list(range(len(worms))), type=pa.int32()),
            "max_radius": pa.array([worm.max_radius for worm in worms], type=pa.float64()),
        }
    )


def worms_from_tables(trajectories: pa.Table, radii: pa.Table) -> list[Worm]:
    """Inverse of :func:`trajectories_table` / :func:`radii_table`."""
    points = np.stack(
        [trajectories.column(axis).to_numpy() for axis in ("x", "y", "z")],
        axis=-1,
    ) if trajectories.num_rows else np.zeros((0, 3))
    return worms_from_arrays(
        trajectories.column("worm").to_numpy(),
        points,
        radii.column("max_radius").to_pylist(),
    )


def _worm_visualizer(result, request: VisualizationRequest) -> Optional[VisualizationResult]:
    points = result.artifact_records.get("StartingPoints")
    meta = result.artifact_records.get("WormMetadata")
    if not points or points.value is None or not meta or meta.value is None:
        return None
    window = int(meta.value["window"])
    image = np.zeros((window, window), dtype=np.uint8)
    table = points.value
    if table.num_rows:
        i = table.column("i").to_numpy()
        j = table.column("j").to_numpy()
        image[j, i] = 255
    return write_png(request.output_dir / "starting_points.png", image, artifact_name="StartingPoints")


@stage(
    STAGE_NAME,
    outputs=("StartingPoints", "WormTrajectories", "WormRadii", "WormMetadata"),
    visualizer=_worm_visualizer,
)
def worm_planner_stage(context, deps, config_mapping):
    """Local-maxima start points and one surviving walk per point."""
    config = WormPlannerConfig.from_mapping(config_mapping)

    with context.timed("starting_points"):
        points = find_starting_points(
            config.window,
            config.window,
            config.offset,
            config.scale,
            config.seed,
            context.stream_factory,
        )
    with context.timed("worm_walks"):
        worms = plan_worms(
            points,
            config.height,
            config.offset,
            config.scale,
            config.max_radius,
            config.min_worm_length,
            config.max_worm_range,
            config.seed,
            context.stream_factory,
        )

    lengths = [len(worm) for worm in worms]
    metadata = {
        "window": config.window,
        "height": config.height,
        "seed": config.seed,
        "starting_points": len(points),
        "worms": len(worms),
        "discarded": len(points) - len(worms),
        "mean_length": float(np.mean(lengths)) if lengths else 0.0,
        "max_length": max(lengths) if lengths else 0,
    }
    context.logger.log_summary(
        STAGE_NAME,
        "worm_summary",
        starting_points=metadata["starting_points"],
        worms=metadata["worms"],
        discarded=metadata["discarded"],
    )
    return {
        "StartingPoints": starting_points_table(points),
        "WormTrajectories": trajectories_table(worms),
        "WormRadii": radii_table(worms),
        "WormMetadata": metadata,
    }


__all__ = [
    "STAGE_NAME",
    "WormPlannerConfig",
    "radii_table",
    "starting_points_table",
    "trajectories_table",
    "worm_planner_stage",
    "worms_from_tables",
]
