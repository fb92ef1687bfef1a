"""
Blob (tensor storage) interface definitions.

A blob is the unit of data exchanged between layers: a dense N-axis array
with semantic axes (batch, channel, spatial...) that carries two buffers of
identical shape, a value buffer and a gradient buffer.

Layers never own blobs. They read and write through the views exposed here
and request reallocation through `reshape`.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class IBlob(Protocol):
    """
    Structural interface for a value/gradient buffer pair.

    Notes
    -----
    - `data` and `diff` are read-only views.
    - `mutable_data` and `mutable_diff` are writable views onto the same
      storage.
    - `num`, `channels`, `height` and `width` are legacy accessors for
      4-axis (N, C, H, W) blobs.
    """

    @property
    def shape(self) -> tuple[int, ...]:
        """Return the blob shape."""
        ...

    @property
    def num_axes(self) -> int:
        """Return the number of axes."""
        ...

    def count(self) -> int:
        """Return the total number of elements."""
        ...

    def shape_at(self, axis: int) -> int:
        """Return the extent of `axis` (negative axes count from the end)."""
        ...

    @property
    def num(self) -> int: ...

    @property
    def channels(self) -> int: ...

    @property
    def height(self) -> int: ...

    @property
    def width(self) -> int: ...

    @property
    def data(self) -> Any:
        """Read-only view of the value buffer."""
        ...

    @property
    def mutable_data(self) -> Any:
        """Writable view of the value buffer."""
        ...

    @property
    def diff(self) -> Any:
        """Read-only view of the gradient buffer."""
        ...

    @property
    def mutable_diff(self) -> Any:
        """Writable view of the gradient buffer."""
        ...

    def reshape(self, *dims: int) -> None:
        """(Re)allocate storage for the given shape."""
        ...

    def offset(self, n: int, c: int = 0, *spatial: int) -> int:
        """Return the flat element offset of the given index."""
        ...
