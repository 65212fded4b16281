import numpy as np

from voxel_terrain import generate_terrain
from voxel_terrain.core.params import TerrainParams
from voxel_terrain.core.random import PcgDrawStream

SMALL = {
    "geometry": {"side_length_in_chunks": 2, "chunk_size": 5, "max_cube_height": 8, "base_cube_height": 2, "seed": 77},
    "terrain_noise": {"octaves": 2},
    "caves": {"padding_in_chunks": 1, "min_worm_length": 2},
}


def test_determinism_small():
    t1 = generate_terrain(SMALL)
    t2 = generate_terrain(TerrainParams.from_mapping(SMALL))
    assert t1.grid.shape == (10, 9, 10)
    assert t1.stats == t2.stats
    assert (t1.grid.active == t2.grid.active).all()
    assert (t1.grid.colors == t2.grid.colors).all()
    assert t1.worms == t2.worms
    assert [chunk.chunk for chunk in t1.meshes] == [chunk.chunk for chunk in t2.meshes]
    for first, second in zip(t1.meshes, t2.meshes):
        assert first.vertices.tobytes() == second.vertices.tobytes()
        assert first.triangles.tobytes() == second.triangles.tobytes()
        assert first.colors.tobytes() == second.colors.tobytes()


def test_stats_are_consistent():
    terrain = generate_terrain(SMALL)
    stats = terrain.stats
    assert stats["chunks"] == 4 == len(terrain.meshes)
    assert stats["worms"] <= stats["starting_points"]
    assert stats["active_voxels"] == int(terrain.grid.active.sum())
    assert stats["triangles"] == 2 * stats["faces"]
    assert stats["vertices"] == 4 * stats["faces"]
    assert stats["carved_cells"] == int((~terrain.cave_volume).sum())
    assert terrain.cave_volume.shape == (20, 9, 20)


def test_surface_columns_are_never_below_base():
    terrain = generate_terrain(SMALL)
    # Cells under the base height are either solid or carved by a cave.
    carved = ~terrain.cave_volume[5:15, :, 5:15]
    assert (terrain.grid.active[:, :3, :] | carved[:, :3, :]).all()


def test_stream_factory_is_injected():
    seeds: list[int] = []

    def factory(seed: int) -> PcgDrawStream:
        seeds.append(seed)
        return PcgDrawStream(seed)

    injected = generate_terrain(SMALL, stream_factory=factory)
    assert seeds, "every draw stream should come from the injected factory"
    assert 77 in seeds
    np.testing.assert_array_equal(injected.height_noise, generate_terrain(SMALL).height_noise)


def test_empty_mapping_uses_defaults():
    terrain = generate_terrain({"geometry": {"side_length_in_chunks": 1, "chunk_size": 4}, "caves": {"padding_in_chunks": 0}})
    assert terrain.grid.shape == (4, 33, 4)
    assert len(terrain.meshes) == 1
