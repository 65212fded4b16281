"""Arena-owned numpy buffers for stage outputs."""

from __future__ import annotations

import hashlib
import threading
from typing import Any, Tuple

import numpy as np

DEFAULT_ALIGNMENT = 64


class _Block:
    """One aligned allocation. ``raw`` keeps the over-allocated storage alive."""

    __slots__ = ("name", "array", "raw", "sealed")

    def __init__(self, name: str, shape: Tuple[int, ...], dtype: np.dtype, alignment: int) -> None:
        dtype = np.dtype(dtype)
        nbytes = int(np.prod(shape, dtype=np.int64)) * dtype.itemsize
        self.raw = np.empty(nbytes + alignment, dtype=np.uint8)
        start = -self.raw.ctypes.data % alignment
        self.array = self.raw[start : start + nbytes].view(dtype).reshape(shape)
        self.name = name
        self.sealed = False


class MemoryArena:
    """Owns the height planes and voxel volumes produced during a run.

    Buffers start writable and are sealed read-only once a stage finishes
    filling them, so downstream stages can never mutate an upstream result.
    """

    def __init__(self, alignment: int = DEFAULT_ALIGNMENT) -> None:
        self._alignment = alignment
        self._blocks: list[_Block] = []
        self._lock = threading.Lock()

    def allocate_grid(self, name: str, shape: Tuple[int, int], dtype: np.dtype = np.float32) -> "GridHandle":
        if len(shape) != 2:
            raise ValueError(f"Grid '{name}' needs a 2D shape, got {tuple(shape)}")
        return GridHandle(self._new_block(name, shape, dtype))

    def allocate_volume(self, name: str, shape: Tuple[int, ...], dtype: np.dtype = np.bool_) -> "VolumeHandle":
        if len(shape) < 3:
            raise ValueError(f"Volume '{name}' needs at least 3 axes, got {tuple(shape)}")
        return VolumeHandle(self._new_block(name, shape, dtype))

    def adopt(self, name: str, array: np.ndarray) -> "BufferHandle":
        """Copy a finished array into the arena; the handle comes back sealed."""
        array = np.asarray(array)
        allocate = self.allocate_grid if array.ndim == 2 else self.allocate_volume
        handle = allocate(name, array.shape, dtype=array.dtype)
        np.copyto(handle.mutable_view(), array)
        handle.seal()
        return handle

    def _new_block(self, name: str, shape: Tuple[int, ...], dtype: np.dtype) -> _Block:
        block = _Block(name, tuple(int(n) for n in shape), dtype, self._alignment)
        with self._lock:
            self._blocks.append(block)
        return block

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "allocations": len(self._blocks),
                "bytes_allocated": sum(block.array.nbytes for block in self._blocks),
                "alignment": self._alignment,
            }


class BufferHandle:
    """A stage's view onto one arena block."""

    __slots__ = ("_block",)

    def __init__(self, block: _Block) -> None:
        self._block = block

    def mutable_view(self) -> np.ndarray:
        if self._block.sealed:
            raise RuntimeError(f"'{self._block.name}' is sealed and can no longer be written")
        return self._block.array

    def array(self) -> np.ndarray:
        """Read-only view of the buffer."""
        view = self._block.array.view()
        view.setflags(write=False)
        return view

    def seal(self) -> None:
        if not self._block.sealed:
            self._block.array.setflags(write=False)
            self._block.sealed = True

    @property
    def sealed(self) -> bool:
        return self._block.sealed

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(int(n) for n in self._block.array.shape)

    @property
    def dtype(self) -> np.dtype:
        return self._block.array.dtype

    def checksum(self) -> str:
        """blake2b over dtype, shape and contents."""
        data = np.ascontiguousarray(self._block.array)
        digest = hashlib.blake2b(f"{data.dtype}{data.shape!r}".encode("utf8"))
        digest.update(data.tobytes())
        return digest.hexdigest()

    def __array__(self, dtype=None, copy=None) -> np.ndarray:  # pragma: no cover - implicit numpy bridge
        view = self.array()
        return view if dtype is None else view.astype(dtype)

    def __repr__(self) -> str:
        state = "sealed" if self.sealed else "mutable"
        return f"{type(self).__name__}({self._block.name!r}, shape={self.shape}, dtype={self.dtype}, {state})"


class GridHandle(BufferHandle):
    """Handle referencing a 2D plane such as a height field."""

    __slots__ = ()


class VolumeHandle(BufferHandle):
    """Handle referencing a voxel volume (3D, optionally with a channel axis)."""

    __slots__ = ()


__all__ = ["BufferHandle", "GridHandle", "MemoryArena", "VolumeHandle"]
