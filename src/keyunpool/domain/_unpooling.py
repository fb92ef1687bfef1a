"""
Unpooling interfaces for KeyUnpool.

This module defines **domain-level Protocols** for max-unpooling, the
inverse of max pooling: values of a compact feature map are scattered back
into a larger, zero-initialized map at the positions recorded by the paired
pooling layer (the *mask*).

Two contracts are defined:

- `IUnpoolingOperator`
    The numeric capability (forward scatter / backward gather) with two
    implementations in the infrastructure layer: a NumPy reference and a
    CUDA/cuDNN-accelerated operator. Layers hold one operator chosen at
    construction time instead of specializing through inheritance.
- `IUnpooling2D`
    The 2D unpooling layer surface (kernel/stride/padding accessors).

Shape semantics
---------------
Input:
    x.shape    == (N, C, H, W)
    mask.shape == (N, C, H, W)

Output:
    y.shape == (N, C, H_out, W_out)

where:
    H_out = (H - 1) * s_h + k_h - 2 * p_h
    W_out = (W - 1) * s_w + k_w - 2 * p_w

Each mask entry is a flat index into the (H_out * W_out) plane of its own
(batch, channel) slice.

Notes
-----
This module contains **no NumPy or backend-specific logic**.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, Tuple, runtime_checkable

from ._layer import ILayer


@runtime_checkable
class IUnpoolingOperator(Protocol):
    """
    Protocol for an unpooling execution backend.

    Buffers are host arrays in (N, C, *spatial) layout. The operator writes
    its result into caller-owned output buffers and retains no state between
    calls apart from backend resources created by `prepare`.
    """

    @property
    def name(self) -> str:
        """Short backend tag, e.g. "cpu" or "cuda"."""
        ...

    def prepare(
        self,
        bottom_shape: Sequence[int],
        top_shape: Sequence[int],
        meta: Any,
        dtype: Any = None,
    ) -> None:
        """
        Acquire or refresh backend resources for the given shapes.

        Called by the owning layer on every reshape. Implementations should
        reuse resources when the shapes are unchanged. `dtype` is the
        element type of the blobs (float32 when None).
        """
        ...

    def forward(self, bottom_data: Any, mask: Any, top_data: Any) -> None:
        """
        Zero `top_data`, then scatter `bottom_data` into it per `mask`.
        """
        ...

    def backward(self, top_diff: Any, mask: Any, bottom_diff: Any) -> None:
        """
        Zero `bottom_diff`, then gather `top_diff` into it per `mask`.
        """
        ...

    def close(self) -> None:
        """Release backend resources (idempotent)."""
        ...


@runtime_checkable
class IUnpooling2D(ILayer, Protocol):
    """
    Protocol for 2D unpooling layers operating on NCHW blobs.

    Design constraints
    ------------------
    - Unpooling layers MUST NOT own trainable parameters.
    - Unpooling layers MUST preserve the batch and channel dimensions.
    - Positions never referenced by the mask MUST be zero in the output.
    """

    @property
    def kernel_size(self) -> Tuple[int, int]:
        """Return the resolved window size as (k_h, k_w)."""
        ...

    @property
    def stride(self) -> Tuple[int, int]:
        """Return the resolved stride as (s_h, s_w)."""
        ...

    @property
    def padding(self) -> Tuple[int, int]:
        """Return the resolved padding as (p_h, p_w)."""
        ...
