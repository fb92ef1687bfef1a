"""
Unpooling operator implementations and backend selection.

Layers delegate the numeric work to an `IUnpoolingOperator` chosen once at
construction:

- `ReferenceUnpooling`
    NumPy kernels from `ops.unpool_cpu`. Always available.
- `AcceleratedUnpooling`
    CUDA/cuDNN path through the ctypes bindings. Owns one
    `CudnnUnpoolResources`, created lazily on the first `prepare` and
    reconfigured only when shapes or dtype change.

`select_unpooling_operator` performs capability detection:

- "cpu"  -> reference operator
- "cuda" -> accelerated operator, or `AcceleratorUnavailableError`
- "auto" -> accelerated operator when the native library loads and a
            device can be selected; otherwise the reference operator and a
            `RuntimeWarning` naming the reason

When `engine` is "auto" and `KEYUNPOOL_ENGINE` is set to "cpu" or "cuda",
the environment value is used instead.
"""

from __future__ import annotations

import os
import warnings
from typing import Any, Optional, Sequence

import numpy as np

from ...domain._errors import (
    AcceleratorUnavailableError,
    NativeCallError,
)
from ..native_cuda.python._native_loader import load_keyunpool_cuda_native
from ..native_cuda.python.unpool_nd_ctypes import CudaUnpoolLib, get_cuda_unpool_lib
from ..ops.unpool_cpu import unpool_backward_cpu, unpool_forward_cpu
from ..ops.unpool_cuda import unpool_backward_cuda, unpool_forward_cuda
from ..native_cuda.python._cudnn_resources import CudnnUnpoolResources
from ._unpooling_param import UnpoolNdMeta, _check_engine


class ReferenceUnpooling:
    """
    NumPy reference operator.

    Parameters
    ----------
    check_mask : bool, optional
        Validate mask entries before scattering / gathering.
    """

    def __init__(self, *, check_mask: bool = True) -> None:
        self.check_mask = bool(check_mask)

    @property
    def name(self) -> str:
        return "cpu"

    def prepare(
        self,
        bottom_shape: Sequence[int],
        top_shape: Sequence[int],
        meta: Any,
        dtype: Any = None,
    ) -> None:
        # The NumPy kernels derive everything from the buffers themselves.
        return None

    def forward(self, bottom_data: np.ndarray, mask: np.ndarray, top_data: np.ndarray) -> None:
        unpool_forward_cpu(bottom_data, mask, top_data, check_mask=self.check_mask)

    def backward(self, top_diff: np.ndarray, mask: np.ndarray, bottom_diff: np.ndarray) -> None:
        unpool_backward_cpu(top_diff, mask, bottom_diff, check_mask=self.check_mask)

    def close(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"ReferenceUnpooling(check_mask={self.check_mask})"


class AcceleratedUnpooling:
    """
    CUDA/cuDNN operator backed by the KeyUnpool native library.

    Parameters
    ----------
    lib : CudaUnpoolLib
        Bound native library.
    check_mask : bool, optional
        Validate mask entries on the host before upload.

    Notes
    -----
    `prepare` must run before `forward` / `backward`; the owning layer calls
    it from `reshape`. `close` releases the cuDNN handle and descriptors and
    is safe to call repeatedly.
    """

    def __init__(self, lib: CudaUnpoolLib, *, check_mask: bool = True) -> None:
        self.lib = lib
        self.check_mask = bool(check_mask)
        self._resources: Optional[CudnnUnpoolResources] = None

    @property
    def name(self) -> str:
        return "cuda"

    @property
    def resources(self) -> Optional[CudnnUnpoolResources]:
        return self._resources

    @staticmethod
    def _as_nd(meta: Any) -> UnpoolNdMeta:
        if isinstance(meta, UnpoolNdMeta):
            return meta
        return meta.as_nd()

    def prepare(
        self,
        bottom_shape: Sequence[int],
        top_shape: Sequence[int],
        meta: Any,
        dtype: Any = None,
    ) -> None:
        nd = self._as_nd(meta)
        dtype = np.dtype(np.float32 if dtype is None else dtype)
        if self._resources is None or self._resources.closed:
            self._resources = CudnnUnpoolResources.create(
                self.lib,
                bottom_shape=bottom_shape,
                top_shape=top_shape,
                kernel=nd.kernel_shape,
                pad=nd.pad_shape,
                stride=nd.stride_shape,
                dtype=dtype,
            )
            return
        self._resources.configure(
            bottom_shape, top_shape, nd.kernel_shape, nd.pad_shape, nd.stride_shape, dtype
        )

    def _require_resources(self) -> CudnnUnpoolResources:
        res = self._resources
        if res is None or res.closed or not res.configured:
            raise RuntimeError("AcceleratedUnpooling.prepare() must be called first")
        return res

    def forward(self, bottom_data: np.ndarray, mask: np.ndarray, top_data: np.ndarray) -> None:
        res = self._require_resources()
        unpool_forward_cuda(
            self.lib, res, bottom_data, mask, top_data, check_mask=self.check_mask
        )

    def backward(self, top_diff: np.ndarray, mask: np.ndarray, bottom_diff: np.ndarray) -> None:
        res = self._require_resources()
        unpool_backward_cuda(
            self.lib, res, top_diff, mask, bottom_diff, check_mask=self.check_mask
        )

    def close(self) -> None:
        res, self._resources = self._resources, None
        if res is not None:
            res.close()

    def __repr__(self) -> str:
        return f"AcceleratedUnpooling(check_mask={self.check_mask})"


def _effective_engine(engine: str) -> str:
    _check_engine(engine)
    if engine == "auto":
        env = os.environ.get("KEYUNPOOL_ENGINE", "").strip().lower()
        if env in ("cpu", "cuda"):
            return env
    return engine


def select_unpooling_operator(
    engine: str = "auto",
    *,
    check_mask: bool = True,
    lib_path: Optional[str] = None,
    device: int = 0,
):
    """
    Choose the unpooling operator for `engine`.

    Parameters
    ----------
    engine : str
        "auto", "cpu" or "cuda".
    check_mask : bool, optional
        Forwarded to the operator.
    lib_path : Optional[str]
        Explicit native library path (see `load_keyunpool_cuda_native`).
    device : int, optional
        CUDA device ordinal selected for the accelerated operator.

    Returns
    -------
    IUnpoolingOperator
        `ReferenceUnpooling` or `AcceleratedUnpooling`.

    Raises
    ------
    AcceleratorUnavailableError
        If `engine` is "cuda" and the native backend cannot be used.
    UnpoolingConfigError
        If `engine` is not recognized.
    """
    engine = _effective_engine(engine)
    if engine == "cpu":
        return ReferenceUnpooling(check_mask=check_mask)

    try:
        cuda = get_cuda_unpool_lib(load_keyunpool_cuda_native(lib_path))
        cuda.cuda_set_device(device)
    except (OSError, AttributeError, NativeCallError) as e:
        reason = f"{type(e).__name__}: {e}"
        if engine == "cuda":
            raise AcceleratorUnavailableError(reason) from e
        warnings.warn(
            f"CUDA unpooling unavailable ({reason}); falling back to the NumPy "
            "reference operator.",
            RuntimeWarning,
            stacklevel=2,
        )
        return ReferenceUnpooling(check_mask=check_mask)

    return AcceleratedUnpooling(cuda, check_mask=check_mask)
