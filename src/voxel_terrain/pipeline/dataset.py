"""On-disk artifacts for terrain stages.

Every stage output is written once into the cache entry and then mirrored
into ``<run>/datasets/<stage>/`` so a run directory is self-contained. Four
encodings are used:

``grid`` / ``volume``
    Arena buffers (height planes, carved volumes, voxel colours), ``.npy``.
``ndarray``
    Loose numpy arrays such as the concatenated mesh buffers, ``.npy``.
``arrow``
    Tabular outputs (worm trajectories, chunk index), uncompressed feather.
``json``
    Plain metadata dictionaries and scalars.
"""

from __future__ import annotations

import hashlib
import json
import shutil
from pathlib import Path
from typing import Any

import numpy as np
import pyarrow as pa
import pyarrow.feather as feather

from .memory import BufferHandle, GridHandle, MemoryArena, VolumeHandle
from .models import ArtifactRecord, StageResult

SUFFIXES = {"grid": ".npy", "volume": ".npy", "ndarray": ".npy", "arrow": ".arrow", "json": ".json"}


def _digest(payload: bytes) -> str:
    return hashlib.blake2b(payload).hexdigest()


def artifact_kind(value: Any) -> str:
    """Name the encoding used for a raw stage output."""
    if isinstance(value, GridHandle):
        return "grid"
    if isinstance(value, VolumeHandle):
        return "volume"
    if isinstance(value, np.ndarray):
        return "ndarray"
    if isinstance(value, pa.Table):
        return "arrow"
    if value is None or isinstance(value, (dict, list, int, float, str, bool)):
        return "json"
    raise TypeError(f"Cannot persist artifact of type {type(value).__name__}")


class DatasetWriter:
    """Writes stage outputs into the cache and the run's dataset directory."""

    def __init__(self, dataset_root: Path) -> None:
        self._root = dataset_root
        self._root.mkdir(parents=True, exist_ok=True)

    def stage_dir(self, stage_name: str) -> Path:
        target = self._root / stage_name
        target.mkdir(parents=True, exist_ok=True)
        return target

    def persist(self, stage_result: StageResult, cache_dir: Path) -> None:
        """Encode every raw output and replace it with an :class:`ArtifactRecord`."""
        mirror = self.stage_dir(stage_result.stage_name)
        cache_dir.mkdir(parents=True, exist_ok=True)
        for name, value in stage_result.raw_artifacts.items():
            try:
                kind = artifact_kind(value)
            except TypeError as exc:
                raise TypeError(f"{stage_result.stage_name}.{name}: {exc}") from exc
            stage_result.register_artifact(self._encode(kind, name, value, cache_dir, mirror))
        stage_result.raw_artifacts.clear()

    def hydrate_from_cache(self, stage_result: StageResult, arena: MemoryArena) -> None:
        """Copy cached payloads into this run and load their values."""
        mirror = self.stage_dir(stage_result.stage_name)
        for record in stage_result.artifact_records.values():
            target = mirror / record.metadata.get("filename", record.cache_path.name)
            self._mirror(record.cache_path, target)
            record.dataset_path = target
            record.value = self._decode(record, arena)

    @staticmethod
    def _mirror(source: Path, target: Path) -> None:
        if source != target:
            shutil.copy2(source, target)

    def _encode(self, kind: str, name: str, value: Any, cache_dir: Path, mirror: Path) -> ArtifactRecord:
        filename = name + SUFFIXES[kind]
        cache_path = cache_dir / filename
        metadata: dict[str, Any] = {"filename": filename}

        if kind in ("grid", "volume"):
            handle: BufferHandle = value
            handle.seal()
            np.save(cache_path, handle.array(), allow_pickle=False)
            checksum = handle.checksum()
            metadata.update(shape=list(handle.shape), dtype=str(handle.dtype))
        elif kind == "ndarray":
            value = np.ascontiguousarray(value)
            np.save(cache_path, value, allow_pickle=False)
            checksum = _digest(f"{value.dtype}{value.shape!r}".encode("utf8") + value.tobytes())
            metadata.update(shape=list(value.shape), dtype=str(value.dtype))
        elif kind == "arrow":
            feather.write_feather(value, cache_path, compression="uncompressed")
            checksum = _digest(cache_path.read_bytes())
            metadata.update(schema=value.schema.to_string(), rows=value.num_rows)
        else:
            encoded = json.dumps(value, sort_keys=True).encode("utf8")
            cache_path.write_bytes(encoded)
            checksum = _digest(encoded)

        dataset_path = mirror / filename
        self._mirror(cache_path, dataset_path)
        return ArtifactRecord(
            name=name,
            kind=kind,
            checksum=checksum,
            dataset_path=dataset_path,
            cache_path=cache_path,
            metadata=metadata,
            value=value,
        )

    @staticmethod
    def _decode(record: ArtifactRecord, arena: MemoryArena) -> Any:
        path = record.dataset_path
        if record.kind == "json":
            return json.loads(path.read_text(encoding="utf8"))
        if record.kind == "arrow":
            return feather.read_table(path)
        if record.kind == "ndarray":
            return np.load(path, allow_pickle=False)
        if record.kind in ("grid", "volume"):
            # Cached buffers come back through the arena so they are sealed again.
            return arena.adopt(record.name, np.load(path, allow_pickle=False))
        raise ValueError(f"Artifact '{record.name}' has unknown kind '{record.kind}'")


__all__ = ["DatasetWriter", "SUFFIXES", "artifact_kind"]
