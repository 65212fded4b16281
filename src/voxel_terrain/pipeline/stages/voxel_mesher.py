"""Stage 5 – per-chunk surface meshes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import numpy as np
import pyarrow as pa

from ...core.mesher import ChunkMesh, mesh
from ..registry import stage
from ..visualization import VisualizationRequest, VisualizationResult, normalize_to_u8, write_png
from .terrain_composer import STAGE_NAME as TERRAIN_STAGE, grid_from_artifacts

STAGE_NAME = "voxel_mesher"


@dataclass(frozen=True)
class VoxelMesherConfig:
    chunk_size: int = 16
    cube_size: float = 1.0

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "VoxelMesherConfig":
        if not mapping:
            return cls()
        return cls(
            chunk_size=int(mapping.get("chunk_size", cls.chunk_size)),
            cube_size=float(mapping.get("cube_size", cls.cube_size)),
        )


def chunk_index_table(meshes: list[ChunkMesh]) -> pa.Table:
    vertex_counts = [chunk.vertex_count for chunk in meshes]
    triangle_counts = [int(chunk.triangles.shape[0]) for chunk in meshes]
    vertex_offsets = np.concatenate(([0], np.cumsum(vertex_counts)[:-1])) if meshes else np.zeros(0)
    index_offsets = np.concatenate(([0], np.cumsum(triangle_counts)[:-1])) if meshes else np.zeros(0)
    return pa.table(
        {
            "chunk_x": pa.array([chunk.chunk[0] for chunk in meshes], type=pa.int32()),
            "chunk_z": pa.array([chunk.chunk[1] for chunk in meshes], type=pa.int32()),
            "vertex_offset": pa.array(vertex_offsets.astype(np.int64), type=pa.int64()),
            "vertex_count": pa.array(vertex_counts, type=pa.int64()),
            "index_offset": pa.array(index_offsets.astype(np.int64), type=pa.int64()),
            "index_count": pa.array(triangle_counts, type=pa.int64()),
        }
    )


def mesh_from_artifacts(index: pa.Table, vertices: np.ndarray, triangles: np.ndarray, colors: np.ndarray) -> list[ChunkMesh]:
    """Split the concatenated buffers back into chunk-local meshes."""
    meshes: list[ChunkMesh] = []
    for row in index.to_pylist():
        v0, vn = row["vertex_offset"], row["vertex_count"]
        i0, in_ = row["index_offset"], row["index_count"]
        meshes.append(
            ChunkMesh(
                chunk=(row["chunk_x"], row["chunk_z"]),
                vertices=np.asarray(vertices[v0 : v0 + vn], dtype=np.float32),
                triangles=np.asarray(triangles[i0 : i0 + in_], dtype=np.int32),
                colors=np.asarray(colors[v0 : v0 + vn], dtype=np.uint8),
            )
        )
    return meshes


def meshes_from_result(result) -> list[ChunkMesh]:
    return mesh_from_artifacts(
        result.artifact("ChunkIndex").value,
        result.artifact("MeshVertices").array(),
        result.artifact("MeshTriangles").array(),
        result.artifact("MeshColors").array(),
    )


def _mesh_visualizer(result, request: VisualizationRequest) -> Optional[VisualizationResult]:
    record = result.artifact_records.get("ChunkIndex")
    if not record or record.value is None or record.value.num_rows == 0:
        return None
    table = record.value
    cx = table.column("chunk_x").to_numpy()
    cz = table.column("chunk_z").to_numpy()
    faces = table.column("vertex_count").to_numpy() // 4
    image = np.zeros((int(cz.max()) + 1, int(cx.max()) + 1), dtype=np.float64)
    image[cz, cx] = faces
    return write_png(request.output_dir / "chunk_faces.png", normalize_to_u8(image), artifact_name="ChunkIndex")


@stage(
    STAGE_NAME,
    inputs=(TERRAIN_STAGE,),
    outputs=("ChunkIndex", "MeshVertices", "MeshTriangles", "MeshColors", "MeshMetadata"),
    visualizer=_mesh_visualizer,
)
def voxel_mesher_stage(context, deps, config_mapping):
    """Neighbour-culled quads for every chunk; triangle indices stay chunk-local."""
    config = VoxelMesherConfig.from_mapping(config_mapping)
    grid = grid_from_artifacts(deps[TERRAIN_STAGE], config.cube_size)

    with context.timed("mesh_chunks"):
        meshes = mesh(grid, config.chunk_size)

    if meshes:
        vertices = np.concatenate([chunk.vertices for chunk in meshes]).astype(np.float32)
        triangles = np.concatenate([chunk.triangles for chunk in meshes]).astype(np.int32)
        colors = np.concatenate([chunk.colors for chunk in meshes]).astype(np.uint8)
    else:
        vertices = np.zeros((0, 3), dtype=np.float32)
        triangles = np.zeros((0,), dtype=np.int32)
        colors = np.zeros((0, 4), dtype=np.uint8)

    faces = sum(chunk.face_count for chunk in meshes)
    metadata = {
        "chunk_size": config.chunk_size,
        "chunks": len(meshes),
        "faces": faces,
        "vertices": int(vertices.shape[0]),
        "triangles": int(triangles.shape[0] // 3),
    }
    context.logger.log_summary(STAGE_NAME, "mesh_summary", chunks=len(meshes), faces=faces)
    return {
        "ChunkIndex": chunk_index_table(meshes),
        "MeshVertices": vertices,
        "MeshTriangles": triangles,
        "MeshColors": colors,
        "MeshMetadata": metadata,
    }


__all__ = [
    "STAGE_NAME",
    "VoxelMesherConfig",
    "chunk_index_table",
    "mesh_from_artifacts",
    "meshes_from_result",
    "voxel_mesher_stage",
]
