"""Records describing what a stage produced and how long it took."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import numpy as np


@dataclass
class StageStats:
    """Wall clock, CPU time and arena footprint of one stage run."""

    start_ns: int
    end_ns: int
    duration_ns: int
    cpu_time_ns: int
    memory_bytes: int
    cache_hit: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, cache_hit: bool) -> "StageStats":
        # Stats read back from a manifest describe the original run, not this one.
        counters = {f.name: int(data[f.name]) for f in fields(cls) if f.name != "cache_hit"}
        return cls(cache_hit=cache_hit, **counters)


@dataclass
class ArtifactRecord:
    """One named output: where it lives on disk and, once loaded, its value."""

    name: str
    kind: str
    checksum: str
    dataset_path: Path
    cache_path: Path
    metadata: Dict[str, Any] = field(default_factory=dict)
    value: Any | None = None

    def to_manifest(self, base_dir: Path) -> Dict[str, Any]:
        path = self.cache_path
        if path.is_absolute() and path.is_relative_to(base_dir):
            path = path.relative_to(base_dir)
        return {
            "name": self.name,
            "kind": self.kind,
            "checksum": self.checksum,
            "path": str(path),
            "metadata": self.metadata,
        }

    @classmethod
    def from_manifest(cls, entry: Mapping[str, Any], base_dir: Path) -> "ArtifactRecord":
        path = Path(entry["path"])
        if not path.is_absolute():
            path = base_dir / path
        return cls(
            name=str(entry["name"]),
            kind=str(entry["kind"]),
            checksum=str(entry["checksum"]),
            dataset_path=path,
            cache_path=path,
            metadata=dict(entry.get("metadata", {})),
        )

    def array(self) -> np.ndarray:
        """The loaded value as an ndarray; arena handles give their read-only view."""
        if self.value is None:
            raise KeyError(f"Artifact '{self.name}' has not been loaded")
        unwrap = getattr(self.value, "array", None)
        return np.asarray(unwrap() if callable(unwrap) else self.value)


StageOutput = Mapping[str, Any]


@dataclass
class StageResult:
    """Outputs of a stage, first as raw values and then as persisted records."""

    stage_name: str
    dependencies: tuple[str, ...]
    raw_artifacts: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)
    stats: StageStats | None = None
    artifact_records: Dict[str, ArtifactRecord] = field(default_factory=dict)
    cache_key: str | None = None

    @classmethod
    def from_output(
        cls,
        stage_name: str,
        dependencies: Iterable[str],
        output: "StageOutput | StageResult",
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> "StageResult":
        """Wrap the mapping a stage returned, keyed by output name."""
        if isinstance(output, StageResult):
            result = replace(output, stage_name=stage_name, dependencies=tuple(dependencies))
            result.metadata.update(metadata or {})
            return result
        if not isinstance(output, Mapping):
            raise TypeError(f"Stage '{stage_name}' must return a mapping of outputs, got {type(output).__name__}")
        return cls(
            stage_name=stage_name,
            dependencies=tuple(dependencies),
            raw_artifacts=dict(output),
            metadata=dict(metadata or {}),
        )

    def register_artifact(self, record: ArtifactRecord) -> None:
        self.artifact_records[record.name] = record

    def artifact(self, name: str) -> ArtifactRecord:
        record = self.artifact_records.get(name)
        if record is None or record.value is None:
            available = ", ".join(sorted(self.artifact_records)) or "none"
            raise KeyError(f"Stage '{self.stage_name}' has no loaded artifact '{name}' (available: {available})")
        return record

    def record_stats(self, stats: StageStats) -> None:
        self.stats = stats

    def set_cache_key(self, cache_key: str) -> None:
        self.cache_key = cache_key

    @property
    def artifact_checksums(self) -> Dict[str, str]:
        return {name: record.checksum for name, record in self.artifact_records.items()}

    def to_manifest(self, base_dir: Path) -> Dict[str, Any]:
        missing = [label for label, value in (("cache_key", self.cache_key), ("stats", self.stats)) if value is None]
        if missing:
            raise ValueError(f"Stage '{self.stage_name}' cannot be cached without {' and '.join(missing)}")
        return {
            "stage_name": self.stage_name,
            "dependencies": list(self.dependencies),
            "metadata": self.metadata,
            "cache_key": self.cache_key,
            "stats": self.stats.to_dict(),
            "artifacts": [record.to_manifest(base_dir) for record in self.artifact_records.values()],
        }
