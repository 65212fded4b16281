from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from voxel_terrain import generate_terrain
from voxel_terrain.core.random import PcgDrawStream, default_stream, stream_identity
from voxel_terrain.pipeline import ExecutionEngine, PipelineConfig, ensure_builtin_stages, registry
from voxel_terrain.pipeline.stages import STAGE_NAMES
from voxel_terrain.pipeline.stages.voxel_mesher import meshes_from_result
from voxel_terrain.pipeline.stages.worm_planner import worms_from_tables

SMALL = {
    "geometry": {
        "side_length_in_chunks": 2,
        "chunk_size": 6,
        "max_cube_height": 10,
        "base_cube_height": 3,
        "seed": 21,
    },
    "terrain_noise": {"octaves": 3, "adjustment_curve": [[0.0, 0.0], [0.5, 0.3], [1.0, 1.0]]},
    "caves": {"padding_in_chunks": 1, "max_radius": 2.5, "min_worm_length": 3},
}


@pytest.fixture(autouse=True)
def _ensure_stages_registered():
    reg = registry()
    reg.clear()
    ensure_builtin_stages()
    yield
    reg.clear()


def _make_config(tmp_path: Path, run_id: str, **overrides) -> PipelineConfig:
    base = dict(SMALL)
    base.update(overrides)
    base.update(
        {
            "output_dir": str(tmp_path / "out"),
            "cache_dir": str(tmp_path / "cache"),
            "log_dir": str(tmp_path / "logs"),
            "run_id": run_id,
        }
    )
    return PipelineConfig.from_mapping(base)


def test_builtin_stages_registered():
    assert set(STAGE_NAMES) <= set(registry().names())


def test_pipeline_matches_direct_generation(tmp_path: Path):
    config = _make_config(tmp_path, "e2e")
    results = ExecutionEngine(config).run()
    assert list(results) == list(STAGE_NAMES)

    direct = generate_terrain(SMALL)

    np.testing.assert_array_equal(results["height_noise"].artifact("HeightNoise").array(), direct.height_noise)
    planner = results["worm_planner"]
    worms = worms_from_tables(planner.artifact("WormTrajectories").value, planner.artifact("WormRadii").value)
    assert worms == direct.worms
    assert planner.artifact("StartingPoints").value.num_rows == len(direct.starting_points)
    np.testing.assert_array_equal(results["cave_carver"].artifact("SolidVolume").array(), direct.cave_volume)

    composer = results["terrain_composer"]
    np.testing.assert_array_equal(composer.artifact("VoxelActive").array(), direct.grid.active)
    np.testing.assert_array_equal(composer.artifact("VoxelColors").array(), direct.grid.colors)

    meshes = meshes_from_result(results["voxel_mesher"])
    assert [chunk.chunk for chunk in meshes] == [chunk.chunk for chunk in direct.meshes]
    for ours, theirs in zip(meshes, direct.meshes):
        np.testing.assert_array_equal(ours.vertices, theirs.vertices)
        np.testing.assert_array_equal(ours.triangles, theirs.triangles)
        np.testing.assert_array_equal(ours.colors, theirs.colors)

    metadata = results["voxel_mesher"].artifact("MeshMetadata").value
    assert metadata["chunks"] == 4
    assert metadata["faces"] == direct.stats["faces"]
    assert results["worm_planner"].artifact("WormMetadata").value["worms"] == direct.stats["worms"]


def test_stage_artifact_shapes(tmp_path: Path):
    results = ExecutionEngine(_make_config(tmp_path, "shapes")).run()
    assert results["height_noise"].artifact("HeightNoise").array().shape == (12, 12)
    assert results["cave_carver"].artifact("SolidVolume").array().shape == (24, 11, 24)
    assert results["terrain_composer"].artifact("VoxelActive").array().shape == (12, 11, 12)
    assert results["terrain_composer"].artifact("VoxelColors").array().dtype == np.uint8

    index = results["voxel_mesher"].artifact("ChunkIndex").value
    assert index.column_names == [
        "chunk_x",
        "chunk_z",
        "vertex_offset",
        "vertex_count",
        "index_offset",
        "index_count",
    ]
    counts = index.column("vertex_count").to_pylist()
    offsets = index.column("vertex_offset").to_pylist()
    assert offsets == [sum(counts[:i]) for i in range(len(counts))]
    assert sum(counts) == results["voxel_mesher"].artifact("MeshVertices").array().shape[0]


def test_second_run_is_served_from_cache(tmp_path: Path):
    first = ExecutionEngine(_make_config(tmp_path, "first")).run()
    second = ExecutionEngine(_make_config(tmp_path, "second")).run()

    assert all(not result.stats.cache_hit for result in first.values())
    assert all(result.stats.cache_hit for result in second.values())
    np.testing.assert_array_equal(
        first["terrain_composer"].artifact("VoxelActive").array(),
        second["terrain_composer"].artifact("VoxelActive").array(),
    )
    assert meshes_from_result(second["voxel_mesher"])[0].colors.dtype == np.uint8


def _shifted_stream(seed: int) -> PcgDrawStream:
    return PcgDrawStream(seed + 12345)


def test_stream_factory_change_misses_cache(tmp_path: Path):
    ExecutionEngine(_make_config(tmp_path, "default-stream")).run()
    shifted = ExecutionEngine(_make_config(tmp_path, "shifted"), stream_factory=_shifted_stream).run()
    assert all(not result.stats.cache_hit for result in shifted.values())

    fresh = ExecutionEngine(_make_config(tmp_path / "fresh", "fresh"), stream_factory=_shifted_stream).run()
    np.testing.assert_array_equal(
        shifted["height_noise"].artifact("HeightNoise").array(),
        fresh["height_noise"].artifact("HeightNoise").array(),
    )

    again = ExecutionEngine(_make_config(tmp_path, "shifted-again"), stream_factory=_shifted_stream).run()
    assert all(result.stats.cache_hit for result in again.values())
    np.testing.assert_array_equal(
        again["height_noise"].artifact("HeightNoise").array(),
        fresh["height_noise"].artifact("HeightNoise").array(),
    )


def test_seed_change_reruns_every_stage(tmp_path: Path):
    ExecutionEngine(_make_config(tmp_path, "seed-a")).run()
    changed = dict(SMALL)
    changed["geometry"] = dict(SMALL["geometry"], seed=22)
    results = ExecutionEngine(_make_config(tmp_path, "seed-b", geometry=changed["geometry"])).run()
    assert all(not result.stats.cache_hit for result in results.values())


def test_mesher_change_reuses_upstream_cache(tmp_path: Path):
    ExecutionEngine(_make_config(tmp_path, "cube-a")).run()
    geometry = dict(SMALL["geometry"], cube_size=2.0)
    results = ExecutionEngine(_make_config(tmp_path, "cube-b", geometry=geometry)).run()
    assert results["height_noise"].stats.cache_hit
    assert results["worm_planner"].stats.cache_hit
    assert results["cave_carver"].stats.cache_hit
    assert not results["terrain_composer"].stats.cache_hit
    assert not results["voxel_mesher"].stats.cache_hit


def test_visuals_and_logs_are_written(tmp_path: Path):
    config = _make_config(tmp_path, "visuals")
    ExecutionEngine(config, generate_visuals=True).run()

    visual_dir = config.run_visual_dir()
    assert (visual_dir / "height_noise" / "height_noise.png").exists()
    assert (visual_dir / "worm_planner" / "starting_points.png").exists()
    assert (visual_dir / "cave_carver" / "carved_columns.png").exists()
    assert (visual_dir / "terrain_composer" / "top_down.png").exists()
    assert (visual_dir / "voxel_mesher" / "chunk_faces.png").exists()

    events = [json.loads(line) for line in config.run_log_path().read_text().splitlines()]
    types = {event["type"] for event in events}
    assert {"height_noise_summary", "worm_summary", "carve_summary", "terrain_summary", "mesh_summary"} <= types
    worm_summary = next(event for event in events if event["type"] == "worm_summary")
    assert worm_summary["worms"] + worm_summary["discarded"] == worm_summary["starting_points"]


def test_only_caves_pipeline(tmp_path: Path):
    caves = dict(SMALL["caves"], only_caves=True)
    results = ExecutionEngine(_make_config(tmp_path, "caves", caves=caves)).run()
    active = results["terrain_composer"].artifact("VoxelActive").array()
    solid = results["cave_carver"].artifact("SolidVolume").array()
    np.testing.assert_array_equal(active, solid[6:18, :, 6:18])


def test_stream_identity_distinguishes_factories():
    assert stream_identity(default_stream) == "pcg64/low32"
    assert stream_identity(_shifted_stream).endswith("_shifted_stream")
    first = lambda seed: PcgDrawStream(seed + 1)  # noqa: E731
    second = lambda seed: PcgDrawStream(seed + 2)  # noqa: E731
    assert stream_identity(first) != stream_identity(second)
