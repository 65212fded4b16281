"""Configuration models for pipeline runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any, Dict, Mapping
import uuid

import yaml

from ..core.params import TerrainParams


def _expand_dir(path: Path) -> Path:
    return Path(path).expanduser().resolve()


def _default_run_id() -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"run-{timestamp}-{uuid.uuid4().hex[:8]}"


@dataclass
class PipelineConfig:
    """Top-level configuration for a pipeline run."""

    params: TerrainParams = field(default_factory=TerrainParams)
    run_id: str = field(default_factory=_default_run_id)
    output_dir: Path = field(default_factory=lambda: Path("out"))
    cache_dir: Path = field(default_factory=lambda: Path("cache"))
    log_dir: Path = field(default_factory=lambda: Path("logs"))
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "PipelineConfig":
        params = TerrainParams.from_mapping(mapping)

        run_id = mapping.get("run_id") or _default_run_id()
        output_dir = _expand_dir(Path(mapping.get("output_dir", "out")))
        cache_dir = _expand_dir(Path(mapping.get("cache_dir", output_dir / "cache")))
        log_dir = _expand_dir(Path(mapping.get("log_dir", output_dir / "logs")))

        extra = dict(mapping)
        for consumed in ("geometry", "terrain_noise", "caves", "run_id", "output_dir", "cache_dir", "log_dir"):
            extra.pop(consumed, None)

        return cls(
            params=params,
            run_id=str(run_id),
            output_dir=output_dir,
            cache_dir=cache_dir,
            log_dir=log_dir,
            extra=extra,
        )

    @classmethod
    def from_file(cls, path: Path | str) -> "PipelineConfig":
        path = Path(path).expanduser()
        if not path.exists():
            raise FileNotFoundError(path)
        with path.open("r", encoding="utf8") as fh:
            if path.suffix.lower() in {".yml", ".yaml"}:
                data = yaml.safe_load(fh)
            else:
                data = json.load(fh)
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise TypeError(f"Configuration file must contain a mapping, got {type(data)!r}")
        return cls.from_mapping(data)

    def ensure_directories(self) -> None:
        """Create output directories if they do not exist."""
        for directory in (self.output_dir, self.cache_dir, self.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def stage_config(self, stage_name: str) -> Mapping[str, Any]:
        """Flat mapping of every parameter a stage reads; it also keys the stage cache."""
        params = self.params
        geometry = params.geometry
        noise = params.terrain_noise
        caves = params.caves
        if stage_name == "height_noise":
            return {
                "width": geometry.side_length,
                "depth": geometry.side_length,
                "offset": list(params.terrain_offset),
                "scale": noise.scale,
                "octaves": noise.octaves,
                "lacunarity": noise.lacunarity,
                "persistence": noise.persistence,
                "seed": geometry.seed,
                "adjustment_curve": noise.to_dict()["adjustment_curve"],
            }
        if stage_name == "worm_planner":
            return {
                "window": params.worm_window,
                "height": params.volume_height,
                "offset": list(params.cave_offset),
                "scale": caves.scale,
                "max_radius": caves.max_radius,
                "min_worm_length": caves.min_worm_length,
                "max_worm_range": params.padding_length,
                "seed": geometry.seed,
            }
        if stage_name == "cave_carver":
            return {
                "width": params.worm_window,
                "height": params.volume_height,
                "depth": params.worm_window,
                "min_radius": caves.min_radius,
                "radius_noise_ratio": caves.radius_noise_ratio,
            }
        if stage_name == "terrain_composer":
            return {
                "max_cube_height": geometry.max_cube_height,
                "base_cube_height": geometry.base_cube_height,
                "cube_size": geometry.cube_size,
                "padding": params.padding_length,
                "only_caves": caves.only_caves,
                "surface_color": list(noise.surface_color),
                "below_surface_color": list(noise.below_surface_color),
                "cave_color": list(caves.cave_color),
                "adjustment_curve": noise.to_dict()["adjustment_curve"],
            }
        if stage_name == "voxel_mesher":
            return {"chunk_size": geometry.chunk_size, "cube_size": geometry.cube_size}
        return dict(self.extra.get("stage_overrides", {}).get(stage_name, {}))

    def run_output_dir(self) -> Path:
        """Directory where this run stores datasets."""
        return _expand_dir(self.output_dir / self.run_id)

    def run_visual_dir(self) -> Path:
        return _expand_dir(self.run_output_dir() / "visuals")

    def run_dataset_dir(self) -> Path:
        return _expand_dir(self.run_output_dir() / "datasets")

    def run_log_path(self) -> Path:
        return _expand_dir(self.log_dir / f"{self.run_id}.jsonl")


def load_config(source: Path | str) -> PipelineConfig:
    """Convenience helper for CLI consumers."""
    return PipelineConfig.from_file(source)
