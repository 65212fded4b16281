"""Dependency-ordered, content-cached execution of terrain stages."""

from __future__ import annotations

import hashlib
import json
import time
from contextlib import contextmanager
from graphlib import CycleError, TopologicalSorter
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

from ..core.params import TerrainParams
from ..core.random import StreamFactory, default_stream, stream_identity
from .cache import CacheManager
from .config import PipelineConfig
from .dataset import DatasetWriter
from .logging import RunLogger
from .memory import MemoryArena
from .models import StageResult, StageStats
from .registry import StageDescriptor, registry
from .visualization import VisualManager

# Part of every cache key; bump when the on-disk layout changes.
PIPELINE_FORMAT = "voxel-terrain/1"


def canonical(data: Any) -> Any:
    """JSON-ready form of a stage config with mapping keys in sorted order."""
    if data is None or isinstance(data, (bool, int, float, str)):
        return data
    if isinstance(data, Mapping):
        return {str(key): canonical(data[key]) for key in sorted(data, key=str)}
    if isinstance(data, (list, tuple, set, frozenset)):
        return [canonical(item) for item in data]
    return repr(data)


class PipelineContext:
    """What a stage may touch while it runs."""

    def __init__(
        self,
        config: PipelineConfig,
        arena: MemoryArena,
        dataset_writer: DatasetWriter,
        cache_manager: CacheManager,
        logger: RunLogger,
        stream_factory: StreamFactory = default_stream,
    ) -> None:
        self.config = config
        self.arena = arena
        self.dataset_writer = dataset_writer
        self.cache_manager = cache_manager
        self.logger = logger
        self.stream_factory = stream_factory
        self.run_dir = config.run_output_dir()
        self.stage_name: str | None = None

    @property
    def params(self) -> TerrainParams:
        return self.config.params

    @contextmanager
    def timed(self, label: str) -> Iterator[None]:
        """Log the wall time of a block as a ``timed_scope`` event."""
        started = time.perf_counter_ns()
        try:
            yield
        finally:
            self.logger.log_event(
                {
                    "type": "timed_scope",
                    "stage": self.stage_name,
                    "label": label,
                    "duration_ns": time.perf_counter_ns() - started,
                }
            )


class ExecutionEngine:
    """Runs registered stages in dependency order.

    Each stage is keyed by its version, its flat config, the draw stream
    factory and the checksums of everything upstream. A key that is already in the cache is restored from
    disk instead of recomputed.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        generate_visuals: bool = False,
        stream_factory: Optional[StreamFactory] = None,
    ) -> None:
        config.ensure_directories()
        for directory in (config.run_output_dir(), config.run_dataset_dir()):
            directory.mkdir(parents=True, exist_ok=True)
        self._arena = MemoryArena()
        self._cache = CacheManager(config.cache_dir)
        self._writer = DatasetWriter(config.run_dataset_dir())
        self._logger = RunLogger(config.run_log_path())
        self._visuals = VisualManager(config.run_visual_dir()) if generate_visuals else None
        self._context = PipelineContext(
            config=config,
            arena=self._arena,
            dataset_writer=self._writer,
            cache_manager=self._cache,
            logger=self._logger,
            stream_factory=stream_factory or default_stream,
        )

    @property
    def context(self) -> PipelineContext:
        return self._context

    def plan(self, stages: Iterable[str]) -> list[str]:
        """Execution order for ``stages`` plus every stage they depend on."""
        known = registry().descriptors()
        graph: Dict[str, set[str]] = {}
        frontier = list(stages)
        while frontier:
            name = frontier.pop()
            if name in graph:
                continue
            if name not in known:
                raise KeyError(f"Stage '{name}' not registered")
            graph[name] = set(known[name].inputs)
            frontier.extend(graph[name])
        try:
            return list(TopologicalSorter(graph).static_order())
        except CycleError as exc:
            raise ValueError(f"Stage graph has a cycle: {' -> '.join(exc.args[1])}") from exc

    def run(self, stages: Iterable[str] | None = None) -> Dict[str, StageResult]:
        known = registry().descriptors()
        results: Dict[str, StageResult] = {}
        try:
            for name in self.plan(stages or known):
                results[name] = self._run_stage(known[name], results)
        finally:
            self._logger.close()
        return results

    def cache_key(self, descriptor: StageDescriptor, upstream: Mapping[str, StageResult]) -> str:
        payload = {
            "format": PIPELINE_FORMAT,
            "stage": descriptor.name,
            "version": descriptor.version,
            "stream": stream_identity(self._context.stream_factory),
            "config": canonical(self._context.config.stage_config(descriptor.name)),
            "deps": {
                name: {"cache_key": result.cache_key, "artifacts": result.artifact_checksums}
                for name, result in upstream.items()
            },
        }
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf8")
        return hashlib.blake2b(encoded, digest_size=16).hexdigest()

    def _run_stage(self, descriptor: StageDescriptor, results: Mapping[str, StageResult]) -> StageResult:
        upstream = {name: results[name] for name in descriptor.inputs}
        key = self.cache_key(descriptor, upstream)
        self._context.stage_name = descriptor.name
        self._logger.log_stage_start(descriptor.name, key)
        try:
            result = self._cache.load(descriptor.name, key)
            if result is not None:
                result.set_cache_key(key)
                self._writer.hydrate_from_cache(result, self._arena)
            else:
                result = self._compute(descriptor, upstream, key)
                self._cache.store(result)
            if self._visuals is not None:
                if descriptor.visualizer is not None:
                    self._visuals.emit_custom(result, descriptor.visualizer)
                else:
                    self._visuals.emit(result)
            self._logger.log_stage_end(result, descriptor.description)
        finally:
            self._context.stage_name = None
        return result

    def _compute(self, descriptor: StageDescriptor, upstream: Mapping[str, StageResult], key: str) -> StageResult:
        wall_start, cpu_start = time.perf_counter_ns(), time.process_time_ns()
        output = descriptor.callable(self._context, upstream, self._context.config.stage_config(descriptor.name))
        result = StageResult.from_output(descriptor.name, descriptor.inputs, output)
        result.set_cache_key(key)
        self._writer.persist(result, self._cache.cache_dir(descriptor.name, key))
        wall_end, cpu_end = time.perf_counter_ns(), time.process_time_ns()
        result.record_stats(
            StageStats(
                start_ns=wall_start,
                end_ns=wall_end,
                duration_ns=wall_end - wall_start,
                cpu_time_ns=cpu_end - cpu_start,
                memory_bytes=self._arena.stats()["bytes_allocated"],
                cache_hit=False,
            )
        )
        return result


__all__ = ["ExecutionEngine", "PipelineContext", "canonical"]
