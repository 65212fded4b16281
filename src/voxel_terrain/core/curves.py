"""Monotonic height adjustment curves mapping [0, 1] onto [0, 1]."""

from __future__ import annotations

from typing import Any, Callable, Sequence

import numpy as np

AdjustmentCurve = Callable[[float], float]


def linear(value: float) -> float:
    return value


def smoothstep(value: float) -> float:
    t = min(max(value, 0.0), 1.0)
    return t * t * (3.0 - 2.0 * t)


class KeyframeCurve:
    """Piecewise-linear curve through ``(t, value)`` keyframes."""

    def __init__(self, keyframes: Sequence[Sequence[float]]) -> None:
        if len(keyframes) < 2:
            raise ValueError("Keyframe curves need at least two keyframes")
        points = np.asarray(keyframes, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 2:
            raise ValueError("Keyframes must be [t, value] pairs")
        ts, values = points[:, 0], points[:, 1]
        if np.any(np.diff(ts) <= 0):
            raise ValueError("Keyframe times must be strictly increasing")
        if np.any(np.diff(values) < 0):
            raise ValueError("Keyframe values must be non-decreasing")
        self._ts = ts
        self._values = values

    def __call__(self, value: float) -> float:
        return float(np.interp(value, self._ts, self._values))

    def keyframes(self) -> list[list[float]]:
        return [[float(t), float(v)] for t, v in zip(self._ts, self._values)]

    def __repr__(self) -> str:
        return f"KeyframeCurve({self.keyframes()!r})"


_NAMED = {"linear": linear, "smoothstep": smoothstep}


def curve_from_config(curve: Any) -> AdjustmentCurve:
    """Build a curve from a name, a keyframe list, or an existing callable."""
    if curve is None:
        return linear
    if callable(curve):
        return curve
    if isinstance(curve, str):
        try:
            return _NAMED[curve]
        except KeyError as exc:
            raise ValueError(f"Unknown adjustment curve '{curve}'") from exc
    if isinstance(curve, Sequence):
        return KeyframeCurve(curve)
    raise TypeError(f"Adjustment curve must be a name or keyframe list, got {type(curve)!r}")


__all__ = ["AdjustmentCurve", "KeyframeCurve", "curve_from_config", "linear", "smoothstep"]
