"""Stage 1 – terrain height noise."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import numpy as np

from ...core.curves import curve_from_config
from ...core.noise import generate_plane
from ..registry import stage
from ..visualization import VisualizationRequest, VisualizationResult, write_png

STAGE_NAME = "height_noise"


@dataclass(frozen=True)
class HeightNoiseConfig:
    width: int = 64
    depth: int = 64
    offset: tuple[int, int] = (0, 0)
    scale: float = 1.0
    octaves: int = 4
    lacunarity: float = 2.0
    persistence: float = 0.5
    seed: int = 0
    adjustment_curve: Any = "linear"

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "HeightNoiseConfig":
        if not mapping:
            return cls()
        offset = mapping.get("offset", cls.offset)
        return cls(
            width=int(mapping.get("width", cls.width)),
            depth=int(mapping.get("depth", cls.depth)),
            offset=(int(offset[0]), int(offset[1])),
            scale=float(mapping.get("scale", cls.scale)),
            octaves=int(mapping.get("octaves", cls.octaves)),
            lacunarity=float(mapping.get("lacunarity", cls.lacunarity)),
            persistence=float(mapping.get("persistence", cls.persistence)),
            seed=int(mapping.get("seed", cls.seed)),
            adjustment_curve=mapping.get("adjustment_curve", cls.adjustment_curve),
        )


def _height_visualizer(result, request: VisualizationRequest) -> Optional[VisualizationResult]:
    record = result.artifact_records.get("HeightNoise")
    if not record or record.value is None:
        return None
    plane = record.array()
    curve = curve_from_config(result.artifact("HeightNoiseMetadata").value.get("adjustment_curve"))
    adjusted = np.array([[curve(float(v)) for v in row] for row in plane], dtype=np.float64)
    # Rows are depth so the image reads like a map with x to the right.
    gray = (np.clip(adjusted, 0.0, 1.0).T * 255.0).astype(np.uint8)
    return write_png(request.output_dir / "height_noise.png", gray, artifact_name="HeightNoise")


@stage(
    STAGE_NAME,
    outputs=("HeightNoise", "HeightNoiseMetadata"),
    visualizer=_height_visualizer,
)
def height_noise_stage(context, deps, config_mapping):
    """Fractal noise plane that drives column heights."""
    config = HeightNoiseConfig.from_mapping(config_mapping)
    handle = context.arena.allocate_grid("height_noise", (config.width, config.depth), dtype=np.float32)

    with context.timed("height_noise_plane"):
        handle.mutable_view()[...] = generate_plane(
            config.width,
            config.depth,
            config.offset,
            config.scale,
            config.octaves,
            config.lacunarity,
            config.persistence,
            config.seed,
            context.stream_factory,
        )
    handle.seal()

    plane = handle.array()
    metadata = {
        "width": config.width,
        "depth": config.depth,
        "octaves": config.octaves,
        "seed": config.seed,
        "min": float(plane.min()) if plane.size else 0.0,
        "max": float(plane.max()) if plane.size else 0.0,
        "mean": float(plane.mean()) if plane.size else 0.0,
        "adjustment_curve": config.adjustment_curve,
    }
    context.logger.log_summary(
        STAGE_NAME,
        "height_noise_summary",
        seed=config.seed,
        octaves=config.octaves,
        mean=metadata["mean"],
    )
    return {"HeightNoise": handle, "HeightNoiseMetadata": metadata}


__all__ = ["HeightNoiseConfig", "STAGE_NAME", "height_noise_stage"]
