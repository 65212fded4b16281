"""Named pipeline stages and the decorator that registers them."""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Mapping, Optional, Union

from .models import StageOutput, StageResult

if TYPE_CHECKING:
    from .execution import PipelineContext
    from .visualization import VisualizationRequest, VisualizationResult

StageCallable = Callable[["PipelineContext", Mapping[str, StageResult], Mapping[str, Any]], StageOutput]
StageVisualizer = Callable[
    [StageResult, "VisualizationRequest"],
    Optional[Union["VisualizationResult", Iterable["VisualizationResult"]]],
]


@dataclass(frozen=True)
class StageDescriptor:
    """Everything the engine needs to order, key and run one stage."""

    name: str
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]
    callable: StageCallable
    version: str = "v1"
    visualizer: Optional[StageVisualizer] = None
    description: Optional[str] = None


class StageRegistry:
    def __init__(self) -> None:
        self._by_name: Dict[str, StageDescriptor] = {}

    def register(self, descriptor: StageDescriptor) -> None:
        existing = self._by_name.get(descriptor.name)
        if existing is not None:
            raise ValueError(
                f"Stage '{descriptor.name}' is already provided by {existing.callable.__module__}"
            )
        self._by_name[descriptor.name] = descriptor

    def get(self, name: str) -> StageDescriptor:
        if name not in self._by_name:
            raise KeyError(f"Unknown stage '{name}'")
        return self._by_name[name]

    def clear(self) -> None:
        self._by_name.clear()

    def descriptors(self) -> Dict[str, StageDescriptor]:
        """Snapshot in registration order."""
        return dict(self._by_name)

    def names(self) -> list[str]:
        return list(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


_REGISTRY = StageRegistry()


def registry() -> StageRegistry:
    return _REGISTRY


def stage(
    name: str,
    inputs: Iterable[str] | None = None,
    outputs: Iterable[str] | None = None,
    *,
    version: str = "v1",
    visualizer: StageVisualizer | None = None,
    description: str | None = None,
) -> Callable[[StageCallable], StageCallable]:
    """Register ``func(context, deps, config)`` as the stage called ``name``.

    ``inputs`` are upstream stage names; their results arrive in ``deps``.
    Bump ``version`` when the stage's algorithm changes so old cache entries
    stop matching.
    """

    def decorator(func: StageCallable) -> StageCallable:
        _REGISTRY.register(
            StageDescriptor(
                name=name,
                inputs=tuple(inputs or ()),
                outputs=tuple(outputs or ()),
                callable=func,
                version=version,
                visualizer=visualizer,
                description=description or func.__doc__,
            )
        )
        return func

    return decorator


def ensure_builtin_stages() -> None:
    """Register the terrain stages, reloading their modules if the registry was cleared."""
    from . import stages

    for module_name in stages.BUILTIN_STAGE_MODULES:
        module = importlib.import_module(f"{stages.__name__}.{module_name}")
        if module.STAGE_NAME not in _REGISTRY:
            importlib.reload(module)
