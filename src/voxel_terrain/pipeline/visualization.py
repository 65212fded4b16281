"""PNG previews of stage artifacts."""

from __future__ import annotations

from dataclasses import dataclass
import math
from pathlib import Path
from typing import Any, List, Optional

import numpy as np
from PIL import Image

from .models import ArtifactRecord, StageResult


@dataclass(frozen=True)
class VisualizationRequest:
    stage_name: str
    output_dir: Path
    artifacts: List[ArtifactRecord]


@dataclass(frozen=True)
class VisualizationResult:
    path: Path
    artifact_name: str
    metadata: dict[str, Any]


class VisualManager:
    """Writes PNG previews for stage artifacts into ``<root>/<stage>/``."""

    def __init__(self, output_root: Path) -> None:
        self._output_root = output_root
        output_root.mkdir(parents=True, exist_ok=True)

    def make_request(self, stage_result: StageResult) -> VisualizationRequest:
        stage_dir = self._output_root / stage_result.stage_name
        stage_dir.mkdir(parents=True, exist_ok=True)
        return VisualizationRequest(
            stage_name=stage_result.stage_name,
            output_dir=stage_dir,
            artifacts=list(stage_result.artifact_records.values()),
        )

    def emit(self, stage_result: StageResult, default_artifact: Optional[str] = None) -> list[VisualizationResult]:
        """Render the first renderable artifact (or ``default_artifact``)."""
        request = self.make_request(stage_result)
        artifacts = request.artifacts
        if default_artifact:
            artifacts = [artifact for artifact in artifacts if artifact.name == default_artifact] or artifacts
        for artifact in artifacts:
            if artifact.value is None:
                continue
            image = _render_value(artifact.value)
            if image is None:
                continue
            path = request.output_dir / f"{artifact.name}.png"
            image.save(path)
            return [VisualizationResult(path=path, artifact_name=artifact.name, metadata={"checksum": artifact.checksum})]
        return []

    def emit_custom(self, stage_result: StageResult, visualizer: "StageVisualizer") -> list[VisualizationResult]:
        request = self.make_request(stage_result)
        result = visualizer(stage_result, request)
        if result is None:
            return []
        if isinstance(result, VisualizationResult):
            return [result]
        return list(result)


def write_png(path: Path, data: np.ndarray, artifact_name: str | None = None) -> VisualizationResult:
    if data.ndim == 2:
        mode = "L"
    elif data.shape[2] == 4:
        mode = "RGBA"
    else:
        mode = "RGB"
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.ascontiguousarray(data, dtype=np.uint8), mode=mode).save(path)
    return VisualizationResult(path=path, artifact_name=artifact_name or path.stem, metadata={})


def _render_value(value: Any) -> Image.Image | None:
    if isinstance(value, np.ndarray):
        array = value
    elif hasattr(value, "array"):
        array = value.array()
    else:
        return None
    if array.size == 0:
        return None
    if array.ndim == 2:
        return Image.fromarray(normalize_to_u8(array), mode="L")
    if array.ndim == 3 and array.dtype == np.bool_:
        # Plan view: fraction of each (x, z) column that is set.
        return Image.fromarray(normalize_to_u8(array.mean(axis=1).T), mode="L")
    return None


def normalize_to_u8(array: np.ndarray) -> np.ndarray:
    array = np.asarray(array, dtype=np.float64)
    finite = array[np.isfinite(array)]
    if finite.size == 0:
        return np.zeros(array.shape, dtype=np.uint8)
    low = float(finite.min())
    high = float(finite.max())
    if math.isclose(low, high):
        high = low + 1.0
    scaled = np.nan_to_num((array - low) / (high - low), nan=0.0, posinf=1.0, neginf=0.0)
    scaled = np.clip(scaled, 0.0, 1.0)
    return (scaled * 255).astype(np.uint8)


def top_down_colors(active: np.ndarray, colors: np.ndarray, background: tuple[int, int, int] = (0, 0, 0)) -> np.ndarray:
    """``(D, W, 3)`` image of the highest active voxel's colour in every column."""
    width, height, depth = active.shape
    image = np.empty((depth, width, 3), dtype=np.uint8)
    image[...] = background
    if height == 0:
        return image
    flipped = active[:, ::-1, :]
    has_any = flipped.any(axis=1)
    top = height - 1 - np.argmax(flipped, axis=1)
    xs, zs = np.nonzero(has_any)
    image[zs, xs] = colors[xs, top[xs, zs], zs, :3]
    return image


__all__ = [
    "VisualManager",
    "VisualizationRequest",
    "VisualizationResult",
    "normalize_to_u8",
    "top_down_colors",
    "write_png",
]
