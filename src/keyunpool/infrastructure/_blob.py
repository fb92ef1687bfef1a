"""
NumPy-backed blob implementation.

`Blob` is the host tensor exchanged between layers. It owns two C-contiguous
buffers of identical shape and dtype:

- a value buffer (`data` / `mutable_data`)
- a gradient buffer (`diff` / `mutable_diff`)

Read-only accessors return non-writeable views so that kernels cannot mutate
their inputs by accident; mutable accessors return writeable views onto the
same storage.

Design notes
------------
- `reshape` reallocates (zero-filled) only when the element count changes;
  otherwise the existing storage is kept and reinterpreted.
- `offset` computes flat element offsets from per-axis strides, so kernels
  can address (batch, channel) slices explicitly instead of advancing
  pointers.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


class Blob:
    """
    Dense N-axis host tensor with value and gradient storage.

    Parameters
    ----------
    shape : Sequence[int]
        Initial shape. May be empty (a zero-element blob awaiting `reshape`).
    dtype : np.dtype, optional
        Element type of both buffers. Defaults to float32.
    """

    __slots__ = ("_shape", "_dtype", "_data", "_diff")

    def __init__(self, shape: Sequence[int] = (), dtype=np.float32) -> None:
        self._dtype = np.dtype(dtype)
        self._shape: tuple[int, ...] = (0,)
        self._data = np.zeros(0, dtype=self._dtype)
        self._diff = np.zeros(0, dtype=self._dtype)
        if len(shape) > 0:
            self.reshape(*shape)

    @classmethod
    def from_numpy(cls, arr: np.ndarray, dtype=None) -> "Blob":
        """
        Build a blob whose value buffer is a copy of `arr`.
        """
        arr = np.asarray(arr, dtype=dtype)
        blob = cls(arr.shape, dtype=arr.dtype)
        blob.copy_from_numpy(arr)
        return blob

    def __repr__(self) -> str:
        return f"Blob(shape={self._shape}, dtype={self._dtype})"

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------
    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def num_axes(self) -> int:
        return len(self._shape)

    def count(self, start_axis: int = 0) -> int:
        """
        Return the number of elements from `start_axis` to the last axis.
        """
        return int(np.prod(self._shape[start_axis:], dtype=np.int64))

    def shape_at(self, axis: int) -> int:
        """
        Return the extent of `axis`; negative axes count from the end.

        Raises
        ------
        IndexError
            If `axis` is out of range.
        """
        if not -self.num_axes <= axis < self.num_axes:
            raise IndexError(
                f"axis {axis} out of range for blob with {self.num_axes} axes"
            )
        return self._shape[axis]

    def _legacy_shape(self, index: int) -> int:
        # Legacy accessors tolerate blobs with fewer than 4 axes.
        if self.num_axes > 4:
            raise ValueError(
                f"Legacy accessors require a blob with at most 4 axes; got shape {self._shape}"
            )
        if index >= self.num_axes:
            return 1
        return self._shape[index]

    @property
    def num(self) -> int:
        return self._legacy_shape(0)

    @property
    def channels(self) -> int:
        return self._legacy_shape(1)

    @property
    def height(self) -> int:
        return self._legacy_shape(2)

    @property
    def width(self) -> int:
        return self._legacy_shape(3)

    def reshape(self, *dims: int) -> None:
        """
        Resize the blob to `dims`.

        Storage is reallocated and zero-filled when the element count
        changes; otherwise the existing buffers are kept.

        Raises
        ------
        ValueError
            If any dimension is negative.
        """
        if len(dims) == 1 and isinstance(dims[0], (tuple, list)):
            dims = tuple(dims[0])
        shape = tuple(int(d) for d in dims)
        if any(d < 0 for d in shape):
            raise ValueError(f"Blob dimensions must be non-negative; got {shape}")

        count = int(np.prod(shape, dtype=np.int64))
        if count != self._data.size:
            self._data = np.zeros(count, dtype=self._dtype)
            self._diff = np.zeros(count, dtype=self._dtype)
        self._shape = shape

    def offset(self, n: int, c: int = 0, *spatial: int) -> int:
        """
        Return the flat element offset of index (n, c, *spatial).

        Trailing axes that are not given are taken as 0, so `offset(0, 1)` is
        the number of elements in one (batch, channel) slice.
        """
        index = (n, c) + tuple(spatial)
        if len(index) > max(self.num_axes, 2):
            raise IndexError(
                f"Too many indices ({len(index)}) for blob with {self.num_axes} axes"
            )
        off = 0
        for axis, extent in enumerate(self._shape):
            i = index[axis] if axis < len(index) else 0
            off = off * extent + int(i)
        return off

    # ------------------------------------------------------------------
    # Buffers
    # ------------------------------------------------------------------
    @staticmethod
    def _readonly(buf: np.ndarray, shape: tuple[int, ...]) -> np.ndarray:
        view = buf.reshape(shape)
        view.flags.writeable = False
        return view

    @property
    def data(self) -> np.ndarray:
        return self._readonly(self._data, self._shape)

    @property
    def mutable_data(self) -> np.ndarray:
        return self._data.reshape(self._shape)

    @property
    def diff(self) -> np.ndarray:
        return self._readonly(self._diff, self._shape)

    @property
    def mutable_diff(self) -> np.ndarray:
        return self._diff.reshape(self._shape)

    def copy_from_numpy(self, arr: np.ndarray, *, diff: bool = False) -> None:
        """
        Copy `arr` into the value (or gradient) buffer.

        Raises
        ------
        ValueError
            If the shape of `arr` does not match the blob shape.
        """
        arr_nd = np.asarray(arr, dtype=self._dtype)
        if arr_nd.shape != self._shape:
            raise ValueError(f"Shape mismatch: blob {self._shape} vs array {arr_nd.shape}")
        target = self.mutable_diff if diff else self.mutable_data
        target[...] = arr_nd

    def to_numpy(self, *, diff: bool = False) -> np.ndarray:
        """
        Return a copy of the value (or gradient) buffer.
        """
        src = self._diff if diff else self._data
        return src.reshape(self._shape).copy()
