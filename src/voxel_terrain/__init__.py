"""Procedural voxel terrain with worm-carved caves."""

from .generate import TerrainResult, generate_terrain

__all__ = ["TerrainResult", "generate_terrain"]
__version__ = "0.1.0"
