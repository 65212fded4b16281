"""Typed generation parameters parsed from plain mappings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple

from .curves import AdjustmentCurve, KeyframeCurve, curve_from_config
from .terrain import Color, ComposeParams

Offset = Tuple[int, int]


def _section(mapping: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = mapping.get(key) or {}
    if not isinstance(value, Mapping):
        raise TypeError(f"'{key}' must be a mapping, got {type(value)!r}")
    return value


def parse_offset(value: Any, name: str = "offset") -> Offset:
    if value is None:
        return (0, 0)
    try:
        x, y = value
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a pair of integers, got {value!r}") from exc
    return (int(x), int(y))


def parse_color(value: Any, name: str = "color") -> Color:
    try:
        channels = [int(channel) for channel in value]
    except TypeError as exc:
        raise ValueError(f"{name} must be a list of 3 or 4 channels, got {value!r}") from exc
    if len(channels) == 3:
        channels.append(255)
    if len(channels) != 4 or any(not 0 <= channel <= 255 for channel in channels):
        raise ValueError(f"{name} must hold 3 or 4 channels in [0, 255], got {value!r}")
    return tuple(channels)  # type: ignore[return-value]


def _add(a: Offset, b: Offset) -> Offset:
    return (a[0] + b[0], a[1] + b[1])


@dataclass(frozen=True)
class GeometryParams:
    side_length_in_chunks: int = 4
    chunk_size: int = 16
    max_cube_height: int = 32
    base_cube_height: int = 8
    cube_size: float = 1.0
    seed: int = 0
    base_noise_offset: Offset = (0, 0)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "GeometryParams":
        params = cls(
            side_length_in_chunks=int(mapping.get("side_length_in_chunks", cls.side_length_in_chunks)),
            chunk_size=int(mapping.get("chunk_size", cls.chunk_size)),
            max_cube_height=int(mapping.get("max_cube_height", cls.max_cube_height)),
            base_cube_height=int(mapping.get("base_cube_height", cls.base_cube_height)),
            cube_size=float(mapping.get("cube_size", cls.cube_size)),
            seed=int(mapping.get("seed", cls.seed)),
            base_noise_offset=parse_offset(mapping.get("base_noise_offset"), "base_noise_offset"),
        )
        params.validate()
        return params

    def validate(self) -> None:
        if self.side_length_in_chunks < 1:
            raise ValueError("side_length_in_chunks must be >= 1")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if self.cube_size <= 0:
            raise ValueError("cube_size must be positive")
        if self.max_cube_height < 0 or self.base_cube_height < 0:
            raise ValueError("Cube heights must be non-negative")
        if self.base_cube_height > self.max_cube_height:
            raise ValueError("base_cube_height cannot exceed max_cube_height")

    @property
    def side_length(self) -> int:
        return self.side_length_in_chunks * self.chunk_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "side_length_in_chunks": self.side_length_in_chunks,
            "chunk_size": self.chunk_size,
            "max_cube_height": self.max_cube_height,
            "base_cube_height": self.base_cube_height,
            "cube_size": self.cube_size,
            "seed": self.seed,
            "base_noise_offset": list(self.base_noise_offset),
        }


@dataclass(frozen=True)
class TerrainNoiseParams:
    offset: Offset = (0, 0)
    octaves: int = 4
    lacunarity: float = 2.0
    persistence: float = 0.5
    scale: float = 1.0
    adjustment_curve: Any = "linear"
    surface_color: Color = (96, 160, 64, 255)
    below_surface_color: Color = (120, 96, 72, 255)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "TerrainNoiseParams":
        curve = mapping.get("adjustment_curve", cls.adjustment_curve)
        curve_from_config(curve)  # validate eagerly
        params = cls(
            offset=parse_offset(mapping.get("offset"), "terrain_noise.offset"),
            octaves=int(mapping.get("octaves", cls.octaves)),
            lacunarity=float(mapping.get("lacunarity", cls.lacunarity)),
            persistence=float(mapping.get("persistence", cls.persistence)),
            scale=float(mapping.get("scale", cls.scale)),
            adjustment_curve=curve,
            surface_color=parse_color(mapping.get("surface_color", cls.surface_color), "surface_color"),
            below_surface_color=parse_color(
                mapping.get("below_surface_color", cls.below_surface_color), "below_surface_color"
            ),
        )
        params.validate()
        return params

    def validate(self) -> None:
        if self.octaves < 1:
            raise ValueError(f"octaves must be >= 1, got {self.octaves}")
        if not 0.0 <= self.persistence <= 1.0:
            raise ValueError(f"persistence must lie in [0, 1], got {self.persistence}")

    def curve(self) -> AdjustmentCurve:
        return curve_from_config(self.adjustment_curve)

    def to_dict(self) -> Dict[str, Any]:
        curve = self.adjustment_curve
        if isinstance(curve, KeyframeCurve):
            curve = curve.keyframes()
        elif callable(curve):
            curve = getattr(curve, "__qualname__", repr(curve))
        return {
            "offset": list(self.offset),
            "octaves": self.octaves,
            "lacunarity": self.lacunarity,
            "persistence": self.persistence,
            "scale": self.scale,
            "adjustment_curve": curve,
            "surface_color": list(self.surface_color),
            "below_surface_color": list(self.below_surface_color),
        }


@dataclass(frozen=True)
class CaveParams:
    only_caves: bool = False
    padding_in_chunks: int = 1
    offset: Offset = (0, 0)
    scale: float = 1.0
    min_radius: float = 1.0
    max_radius: float = 4.0
    radius_noise_ratio: float = 0.5
    min_worm_length: int = 8
    cave_color: Color = (90, 90, 110, 255)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CaveParams":
        params = cls(
            only_caves=bool(mapping.get("only_caves", cls.only_caves)),
            padding_in_chunks=int(mapping.get("padding_in_chunks", cls.padding_in_chunks)),
            offset=parse_offset(mapping.get("offset"), "caves.offset"),
            scale=float(mapping.get("scale", cls.scale)),
            min_radius=float(mapping.get("min_radius", cls.min_radius)),
            max_radius=float(mapping.get("max_radius", cls.max_radius)),
            # Clamped rather than rejected.
            radius_noise_ratio=min(max(float(mapping.get("radius_noise_ratio", cls.radius_noise_ratio)), 0.0), 1.0),
            min_worm_length=int(mapping.get("min_worm_length", cls.min_worm_length)),
            cave_color=parse_color(mapping.get("cave_color", cls.cave_color), "cave_color"),
        )
        params.validate()
        return params

    def validate(self) -> None:
        if self.padding_in_chunks < 0:
            raise ValueError("padding_in_chunks must be >= 0")
        if self.min_radius < 0 or self.max_radius < 0:
            raise ValueError("Worm radii must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "only_caves": self.only_caves,
            "padding_in_chunks": self.padding_in_chunks,
            "offset": list(self.offset),
            "scale": self.scale,
            "min_radius": self.min_radius,
            "max_radius": self.max_radius,
            "radius_noise_ratio": self.radius_noise_ratio,
            "min_worm_length": self.min_worm_length,
            "cave_color": list(self.cave_color),
        }


@dataclass(frozen=True)
class TerrainParams:
    """Every input of one full terrain generation."""

    geometry: GeometryParams = field(default_factory=GeometryParams)
    terrain_noise: TerrainNoiseParams = field(default_factory=TerrainNoiseParams)
    caves: CaveParams = field(default_factory=CaveParams)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "TerrainParams":
        mapping = mapping or {}
        return cls(
            geometry=GeometryParams.from_mapping(_section(mapping, "geometry")),
            terrain_noise=TerrainNoiseParams.from_mapping(_section(mapping, "terrain_noise")),
            caves=CaveParams.from_mapping(_section(mapping, "caves")),
        )

    @property
    def padding_length(self) -> int:
        return self.caves.padding_in_chunks * self.geometry.chunk_size

    @property
    def worm_window(self) -> int:
        return self.geometry.side_length + 2 * self.padding_length

    @property
    def volume_height(self) -> int:
        return self.geometry.max_cube_height + 1

    @property
    def terrain_offset(self) -> Offset:
        return _add(self.geometry.base_noise_offset, self.terrain_noise.offset)

    @property
    def cave_offset(self) -> Offset:
        return _add(self.geometry.base_noise_offset, self.caves.offset)

    def compose_params(self) -> ComposeParams:
        return ComposeParams(
            max_cube_height=self.geometry.max_cube_height,
            base_cube_height=self.geometry.base_cube_height,
            cube_size=self.geometry.cube_size,
            padding=self.padding_length,
            only_caves=self.caves.only_caves,
            surface_color=self.terrain_noise.surface_color,
            below_surface_color=self.terrain_noise.below_surface_color,
            cave_color=self.caves.cave_color,
            adjustment_curve=self.terrain_noise.curve(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "geometry": self.geometry.to_dict(),
            "terrain_noise": self.terrain_noise.to_dict(),
            "caves": self.caves.to_dict(),
        }


__all__ = [
    "CaveParams",
    "GeometryParams",
    "TerrainNoiseParams",
    "TerrainParams",
    "parse_color",
    "parse_offset",
]
