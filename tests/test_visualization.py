from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image

from voxel_terrain.pipeline.models import ArtifactRecord, StageResult
from voxel_terrain.pipeline.visualization import VisualManager, normalize_to_u8, top_down_colors


def _record(tmp_path: Path, name: str, value) -> ArtifactRecord:
    return ArtifactRecord(
        name=name,
        kind="ndarray",
        checksum="dummy",
        dataset_path=tmp_path / f"{name}.npy",
        cache_path=tmp_path / f"{name}.npy",
        metadata={},
        value=value,
    )


def test_normalize_to_u8_handles_flat_and_nan():
    flat = normalize_to_u8(np.full((3, 3), 7.0))
    assert flat.dtype == np.uint8
    assert (flat == 0).all()
    mixed = normalize_to_u8(np.array([[0.0, np.nan], [1.0, 0.5]]))
    assert mixed[0, 0] == 0 and mixed[1, 0] == 255
    assert mixed[0, 1] == 0


def test_top_down_colors_takes_highest_active_voxel():
    active = np.zeros((2, 3, 2), dtype=bool)
    colors = np.zeros((2, 3, 2, 4), dtype=np.uint8)
    active[0, :2, 0] = True
    colors[0, 0, 0] = (1, 1, 1, 255)
    colors[0, 1, 0] = (9, 8, 7, 255)
    active[1, 0, 1] = True
    colors[1, 0, 1] = (4, 5, 6, 255)

    image = top_down_colors(active, colors, background=(0, 0, 255))
    assert image.shape == (2, 2, 3)
    assert tuple(image[0, 0]) == (9, 8, 7)
    assert tuple(image[1, 1]) == (4, 5, 6)
    assert tuple(image[0, 1]) == (0, 0, 255)


def test_visual_manager_emits_png(tmp_path: Path):
    vm = VisualManager(tmp_path)
    arr = np.linspace(0.0, 1.0, 64, dtype=np.float32).reshape(8, 8)

    stage_result = StageResult(stage_name="demo", dependencies=(), raw_artifacts={})
    stage_result.register_artifact(_record(tmp_path, "empty", np.zeros((0, 3), dtype=np.float32)))
    stage_result.register_artifact(_record(tmp_path, "plane", arr))

    outputs = vm.emit(stage_result)
    assert outputs, "Visualizer should produce at least one output"
    assert outputs[0].artifact_name == "plane"
    assert outputs[0].path.exists()
    assert outputs[0].path.suffix == ".png"


def test_boolean_volume_renders_plan_view(tmp_path: Path):
    vm = VisualManager(tmp_path)
    volume = np.ones((4, 3, 5), dtype=bool)
    volume[0, :, 0] = False

    stage_result = StageResult(stage_name="volume", dependencies=(), raw_artifacts={})
    stage_result.register_artifact(_record(tmp_path, "solid", volume))
    (output,) = vm.emit(stage_result)

    with Image.open(output.path) as image:
        assert image.size == (4, 5)
        assert image.getpixel((0, 0)) == 0
        assert image.getpixel((1, 1)) == 255
