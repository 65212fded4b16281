"""Core generation algorithms: noise, worms, carving, composition and meshing."""

from .carving import carve, carve_into, sample_radius
from .curves import KeyframeCurve, curve_from_config
from .mesher import ChunkMesh, mesh, mesh_chunk
from .noise import generate_plane, perlin01
from .params import CaveParams, GeometryParams, TerrainNoiseParams, TerrainParams
from .random import DrawStream, PcgDrawStream, worm_seed
from .terrain import ComposeParams, Voxel, VoxelGrid, compose
from .worms import Worm, find_starting_points, local_maxima, plan_worms

__all__ = [
    "CaveParams",
    "ChunkMesh",
    "ComposeParams",
    "DrawStream",
    "GeometryParams",
    "KeyframeCurve",
    "PcgDrawStream",
    "TerrainNoiseParams",
    "TerrainParams",
    "Voxel",
    "VoxelGrid",
    "Worm",
    "carve",
    "carve_into",
    "compose",
    "curve_from_config",
    "find_starting_points",
    "generate_plane",
    "local_maxima",
    "mesh",
    "mesh_chunk",
    "perlin01",
    "plan_worms",
    "sample_radius",
    "worm_seed",
]
