"""Stage output caching."""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Optional

from .models import ArtifactRecord, StageResult, StageStats


class CacheManager:
    """Persist stage manifests under ``<base>/<stage>/<cache_key>``."""

    MANIFEST = "manifest.json"

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir
        base_dir.mkdir(parents=True, exist_ok=True)

    def cache_dir(self, stage_name: str, cache_key: str) -> Path:
        return self._base_dir / stage_name / cache_key

    def load(self, stage_name: str, cache_key: str) -> Optional[StageResult]:
        directory = self.cache_dir(stage_name, cache_key)
        manifest_path = directory / self.MANIFEST
        if not manifest_path.exists():
            return None
        data = json.loads(manifest_path.read_text(encoding="utf8"))
        records = [ArtifactRecord.from_manifest(manifest, directory) for manifest in data.get("artifacts", [])]
        # A manifest whose payload files were removed is treated as a miss.
        if any(not record.cache_path.exists() for record in records):
            return None
        result = StageResult(
            stage_name=str(data["stage_name"]),
            dependencies=tuple(data.get("dependencies", ())),
            raw_artifacts={},
            metadata=dict(data.get("metadata", {})),
        )
        result.record_stats(StageStats.from_dict(data["stats"], cache_hit=True))
        result.set_cache_key(str(data["cache_key"]))
        for record in records:
            result.register_artifact(record)
        return result

    def store(self, stage_result: StageResult) -> None:
        if stage_result.cache_key is None:
            raise ValueError("Cannot store StageResult without cache_key")
        directory = self.cache_dir(stage_result.stage_name, stage_result.cache_key)
        directory.mkdir(parents=True, exist_ok=True)
        manifest = stage_result.to_manifest(directory)
        (directory / self.MANIFEST).write_text(json.dumps(manifest, indent=2, sort_keys=True), encoding="utf8")

    def clear(self, stage_name: str | None = None) -> None:
        """Drop cached entries for one stage, or for every stage."""
        target = self._base_dir / stage_name if stage_name else self._base_dir
        if target.exists():
            shutil.rmtree(target)
        self._base_dir.mkdir(parents=True, exist_ok=True)
