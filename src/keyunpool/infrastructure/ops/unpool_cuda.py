"""
CUDA host-side orchestration for max-unpooling.

These helpers move host arrays to the device, run the native unpooling
kernels through a prepared `CudnnUnpoolResources`, and copy results back.

Every device buffer allocated by a call is freed before the call returns,
including when a native call fails part-way.

Notes
-----
- The mask is uploaded as int64, matching the native kernel ABI. Masks in
  other dtypes are converted (floats truncated toward zero).
- Output buffers are zero-filled on device before the kernel runs, so
  positions never referenced by the mask stay zero.
"""

from __future__ import annotations

from typing import List

import numpy as np

from ..native_cuda.python.unpool_nd_ctypes import CudaUnpoolLib, DevPtr
from ..native_cuda.python._cudnn_resources import CudnnUnpoolResources
from .unpool_cpu import _as_index_mask, _check_mask, _require_c_contiguous, _validate_pair


def _free_all(lib: CudaUnpoolLib, ptrs: List[DevPtr]) -> None:
    while ptrs:
        lib.cuda_free(ptrs.pop())


def unpool_forward_cuda(
    lib: CudaUnpoolLib,
    resources: CudnnUnpoolResources,
    x: np.ndarray,
    mask: np.ndarray,
    y: np.ndarray,
    *,
    check_mask: bool = True,
) -> np.ndarray:
    """
    Unpooling forward pass on the GPU, written in-place into host `y`.

    Parameters
    ----------
    lib : CudaUnpoolLib
        Bound native library.
    resources : CudnnUnpoolResources
        Resources already configured for `x.shape` / `y.shape`.
    x, mask : np.ndarray
        Input tensor and index mask, shape (N, C, *in_spatial).
    y : np.ndarray
        C-contiguous host output, shape (N, C, *out_spatial).
    check_mask : bool, optional
        Validate mask entries on the host before upload.

    Returns
    -------
    np.ndarray
        `y`, for convenience.
    """
    _validate_pair(x, mask, y)
    _require_c_contiguous(y, "y")
    idx = np.ascontiguousarray(_as_index_mask(mask))
    if check_mask:
        N, C = x.shape[0], x.shape[1]
        in_area = int(np.prod(x.shape[2:], dtype=np.int64))
        _check_mask(
            idx.reshape(N * C, in_area), int(np.prod(y.shape[2:], dtype=np.int64))
        )

    x_c = np.ascontiguousarray(x, dtype=y.dtype)
    ptrs: List[DevPtr] = []
    try:
        ptrs.append(lib.cuda_from_host(x_c))
        ptrs.append(lib.cuda_from_host(idx))
        y_dev = lib.cuda_malloc(y.nbytes)
        ptrs.append(y_dev)
        lib.cuda_memset(y_dev, 0, y.nbytes)

        lib.unpool_forward(
            handle=resources.handle,
            pooling_desc=resources.pooling_desc,
            bottom_desc=resources.bottom_desc,
            x_dev=ptrs[0],
            mask_dev=ptrs[1],
            top_desc=resources.top_desc,
            y_dev=y_dev,
            dtype=y.dtype,
        )
        lib.cuda_memcpy_d2h(y, y_dev)
    finally:
        _free_all(lib, ptrs)
    return y


def unpool_backward_cuda(
    lib: CudaUnpoolLib,
    resources: CudnnUnpoolResources,
    grad_out: np.ndarray,
    mask: np.ndarray,
    grad_x: np.ndarray,
    *,
    check_mask: bool = True,
) -> np.ndarray:
    """
    Unpooling backward pass on the GPU, written in-place into host `grad_x`.
    """
    _validate_pair(grad_x, mask, grad_out)
    _require_c_contiguous(grad_x, "grad_x")
    idx = np.ascontiguousarray(_as_index_mask(mask))
    if check_mask:
        N, C = grad_x.shape[0], grad_x.shape[1]
        _check_mask(
            idx.reshape(N * C, int(np.prod(grad_x.shape[2:], dtype=np.int64))),
            int(np.prod(grad_out.shape[2:], dtype=np.int64)),
        )

    go_c = np.ascontiguousarray(grad_out, dtype=grad_x.dtype)
    ptrs: List[DevPtr] = []
    try:
        ptrs.append(lib.cuda_from_host(go_c))
        ptrs.append(lib.cuda_from_host(idx))
        dx_dev = lib.cuda_malloc(grad_x.nbytes)
        ptrs.append(dx_dev)
        lib.cuda_memset(dx_dev, 0, grad_x.nbytes)

        lib.unpool_backward(
            handle=resources.handle,
            pooling_desc=resources.pooling_desc,
            top_desc=resources.top_desc,
            dy_dev=ptrs[0],
            bottom_desc=resources.bottom_desc,
            mask_dev=ptrs[1],
            dx_dev=dx_dev,
            dtype=grad_x.dtype,
        )
        lib.cuda_memcpy_d2h(grad_x, dx_dev)
    finally:
        _free_all(lib, ptrs)
    return grad_x
