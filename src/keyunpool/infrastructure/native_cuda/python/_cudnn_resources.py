"""
cuDNN handle and descriptor ownership for accelerated unpooling.

`CudnnUnpoolResources` owns the four native objects an accelerated unpooling
call needs:

- one cuDNN handle
- one bottom (pooled) tensor descriptor
- one top (unpooled) tensor descriptor
- one pooling descriptor describing the window being inverted

Lifecycle
---------
- `create(...)` acquires the objects in the order handle, bottom descriptor,
  top descriptor, pooling descriptor. If any step fails, everything acquired
  so far is released in reverse order before the error propagates, so a
  partially built set never leaks.
- `configure(...)` (re)describes tensors and window for new shapes.
- `close()` releases everything in reverse acquisition order. It is
  idempotent and is also registered with `weakref.finalize`, so resources
  are reclaimed when the owner is garbage-collected without an explicit
  close.
"""

from __future__ import annotations

import weakref
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ....domain._errors import UnpoolingShapeError
from .unpool_nd_ctypes import CudaUnpoolLib, Handle


def _release_all(lib: CudaUnpoolLib, acquired: List[Tuple[str, Handle]]) -> None:
    """
    Release `acquired` in reverse order.

    Every release is attempted even if an earlier one fails; the first
    failure is re-raised once all releases have run.
    """
    first_error: Optional[BaseException] = None
    while acquired:
        kind, h = acquired.pop()
        try:
            if kind == "handle":
                lib.cudnn_destroy(h)
            elif kind == "tensor":
                lib.destroy_tensor_desc(h)
            else:
                lib.destroy_pooling_desc(h)
        except Exception as e:
            if first_error is None:
                first_error = e
    if first_error is not None:
        raise first_error


class CudnnUnpoolResources:
    """
    Owner of a cuDNN handle plus the tensor and pooling descriptors.

    Instances are created through `create`; the constructor only records
    already-acquired handles.

    Attributes
    ----------
    handle, bottom_desc, top_desc, pooling_desc : int
        Opaque native handles (0 once closed).
    """

    def __init__(
        self,
        lib: CudaUnpoolLib,
        handle: Handle,
        bottom_desc: Handle,
        top_desc: Handle,
        pooling_desc: Handle,
    ) -> None:
        self._lib = lib
        self.handle = handle
        self.bottom_desc = bottom_desc
        self.top_desc = top_desc
        self.pooling_desc = pooling_desc
        self._configured: Optional[tuple] = None

        # Kept as a list so `close` and the finalizer share the same state.
        self._acquired: List[Tuple[str, Handle]] = [
            ("handle", handle),
            ("tensor", bottom_desc),
            ("tensor", top_desc),
            ("pooling", pooling_desc),
        ]
        self._finalizer = weakref.finalize(self, _release_all, lib, self._acquired)

    @classmethod
    def create(
        cls,
        lib: CudaUnpoolLib,
        *,
        bottom_shape: Optional[Sequence[int]] = None,
        top_shape: Optional[Sequence[int]] = None,
        kernel: Sequence[int] = (),
        pad: Sequence[int] = (),
        stride: Sequence[int] = (),
        dtype: np.dtype = np.float32,
    ) -> "CudnnUnpoolResources":
        """
        Acquire a handle and the three descriptors, optionally configuring them.

        When `bottom_shape` and `top_shape` are given, the new object is
        configured before it is returned and released again if configuration
        fails.

        Raises
        ------
        NativeCallError
            If any acquisition fails. Objects acquired before the failure
            have been released when this propagates.
        UnpoolingShapeError
            If configuration fails the shape inversion check.
        """
        res = cls._acquire(lib)
        if bottom_shape is not None and top_shape is not None:
            try:
                res.configure(bottom_shape, top_shape, kernel, pad, stride, dtype)
            except BaseException:
                res.close()
                raise
        return res

    @classmethod
    def _acquire(cls, lib: CudaUnpoolLib) -> "CudnnUnpoolResources":
        acquired: List[Tuple[str, Handle]] = []
        try:
            handle = lib.cudnn_create()
            acquired.append(("handle", handle))
            bottom_desc = lib.create_tensor_desc()
            acquired.append(("tensor", bottom_desc))
            top_desc = lib.create_tensor_desc()
            acquired.append(("tensor", top_desc))
            pooling_desc = lib.create_pooling_desc()
            acquired.append(("pooling", pooling_desc))
        except BaseException:
            try:
                _release_all(lib, acquired)
            except Exception:
                # The acquisition error is the one worth reporting.
                pass
            raise
        return cls(lib, handle, bottom_desc, top_desc, pooling_desc)

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    @property
    def configured(self) -> bool:
        """True once `configure` has succeeded for the current descriptors."""
        return self._configured is not None

    def configure(
        self,
        bottom_shape: Sequence[int],
        top_shape: Sequence[int],
        kernel: Sequence[int],
        pad: Sequence[int],
        stride: Sequence[int],
        dtype: np.dtype,
    ) -> None:
        """
        Describe tensors and window for the given shapes.

        The pooling descriptor is checked against the bottom shape: pooling
        the top tensor with the configured window must reproduce the bottom
        spatial extent, otherwise the mask could not address the top tensor.
        Calls with an unchanged configuration are no-ops.

        Raises
        ------
        RuntimeError
            If the resources have been closed.
        UnpoolingShapeError
            If pooling the top shape does not yield the bottom shape.
        """
        if self.closed:
            raise RuntimeError("CudnnUnpoolResources is closed")

        key = (
            tuple(bottom_shape),
            tuple(top_shape),
            tuple(kernel),
            tuple(pad),
            tuple(stride),
            np.dtype(dtype).str,
        )
        if key == self._configured:
            return

        lib = self._lib
        self._configured = None
        lib.set_tensor_nd_desc(self.bottom_desc, dtype, bottom_shape)
        lib.set_tensor_nd_desc(self.top_desc, dtype, top_shape)
        lib.set_pooling_nd_desc(self.pooling_desc, kernel, pad, stride)

        pooled = lib.get_pooling_nd_output_dim(
            self.pooling_desc, self.top_desc, len(top_shape)
        )
        if tuple(pooled) != tuple(bottom_shape):
            raise UnpoolingShapeError(
                f"Pooling the unpooled shape {tuple(top_shape)} yields {tuple(pooled)}, "
                f"expected the input shape {tuple(bottom_shape)}"
            )
        self._configured = key

    def close(self) -> None:
        """
        Release all native objects in reverse acquisition order (idempotent).
        """
        if self._finalizer.detach() is None:
            return
        self.handle = self.bottom_desc = self.top_desc = self.pooling_desc = 0
        self._configured = None
        _release_all(self._lib, self._acquired)

    def __enter__(self) -> "CudnnUnpoolResources":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
