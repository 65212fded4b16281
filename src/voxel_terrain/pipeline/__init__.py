"""Staged terrain pipeline: registry, caching engine, datasets and previews."""

from .cache import CacheManager
from .config import PipelineConfig, load_config
from .dataset import DatasetWriter
from .execution import ExecutionEngine, PipelineContext
from .logging import RunLogger
from .memory import BufferHandle, GridHandle, MemoryArena, VolumeHandle
from .models import ArtifactRecord, StageResult, StageStats
from .registry import StageDescriptor, StageRegistry, ensure_builtin_stages, registry, stage
from .visualization import VisualManager

# Ensure built-in stages are registered on import.
from . import stages  # noqa: F401,E402

__all__ = [
    "ArtifactRecord",
    "BufferHandle",
    "CacheManager",
    "DatasetWriter",
    "ExecutionEngine",
    "GridHandle",
    "MemoryArena",
    "PipelineConfig",
    "PipelineContext",
    "RunLogger",
    "StageDescriptor",
    "StageRegistry",
    "StageResult",
    "StageStats",
    "VisualManager",
    "VolumeHandle",
    "ensure_builtin_stages",
    "load_config",
    "registry",
    "stage",
]
