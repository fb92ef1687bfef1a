"""
Layer interface definitions.

This module defines the domain-level contract between a layer and the host
framework that schedules it. The contract is blob-based: the framework owns
all bottom (input) and top (output) blobs, and the layer reads and writes
them during `setup`, `reshape`, `forward` and `backward`.

Lifecycle
---------
1. `setup(bottom, top)` runs once: parameter resolution and validation.
2. `reshape(bottom, top)` runs after setup and whenever bottom shapes change.
3. `forward(bottom, top)` runs every iteration.
4. `backward(top, propagate_down, bottom)` optionally follows forward.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from ._blob import IBlob


@runtime_checkable
class ILayer(Protocol):
    """
    Structural interface for blob-based layers.

    Notes
    -----
    `exact_num_bottom_blobs` / `exact_num_top_blobs` return -1 when the layer
    accepts a variable count.
    """

    @property
    def type(self) -> str:
        """Return the registered layer type name."""
        ...

    @property
    def exact_num_bottom_blobs(self) -> int: ...

    @property
    def exact_num_top_blobs(self) -> int: ...

    def setup(self, bottom: Sequence[IBlob], top: Sequence[IBlob]) -> None:
        """Validate blob counts, resolve parameters and reshape."""
        ...

    def reshape(self, bottom: Sequence[IBlob], top: Sequence[IBlob]) -> None:
        """Recompute derived shapes and resize the top blobs."""
        ...

    def forward(self, bottom: Sequence[IBlob], top: Sequence[IBlob]) -> None:
        """Compute top values from bottom values."""
        ...

    def backward(
        self,
        top: Sequence[IBlob],
        propagate_down: Sequence[bool],
        bottom: Sequence[IBlob],
    ) -> None:
        """Compute bottom gradients from top gradients."""
        ...
