"""
ctypes bindings for the KeyUnpool CUDA/cuDNN unpooling exports.

This module provides low-level Python bindings to the CUDA native library.
It is backend-specific and assumes the library exports these C-ABI symbols
(every function returns an `int` status, 0 meaning success):

CUDA utilities
    keyunpool_cuda_set_device(int device)
    keyunpool_cuda_malloc(uint64_t* out, size_t nbytes)
    keyunpool_cuda_free(uint64_t dev)
    keyunpool_cuda_memcpy_h2d(uint64_t dst, const void* src, size_t nbytes)
    keyunpool_cuda_memcpy_d2h(void* dst, uint64_t src, size_t nbytes)
    keyunpool_cuda_memset(uint64_t dev, int value, size_t nbytes)
    keyunpool_cuda_synchronize(void)

cuDNN handle / descriptors
    keyunpool_cudnn_create(void** handle)
    keyunpool_cudnn_destroy(void* handle)
    keyunpool_cudnn_create_tensor_desc(void** desc)
    keyunpool_cudnn_destroy_tensor_desc(void* desc)
    keyunpool_cudnn_set_tensor_nd_desc(void* desc, int dtype, int nb_dims,
                                       const int* dims)
    keyunpool_cudnn_create_pooling_desc(void** desc)
    keyunpool_cudnn_destroy_pooling_desc(void* desc)
    keyunpool_cudnn_set_pooling_nd_desc(void* desc, int nb_spatial,
                                        const int* window, const int* pad,
                                        const int* stride)
    keyunpool_cudnn_get_pooling_nd_output_dim(void* pool_desc, void* in_desc,
                                              int nb_dims, int* out_dims)

Unpooling kernels (mask is int64 on device)
    keyunpool_cudnn_unpool_forward_{f32,f64}(handle, pool_desc,
        bottom_desc, x, mask, top_desc, y)
    keyunpool_cudnn_unpool_backward_{f32,f64}(handle, pool_desc,
        top_desc, dy, bottom_desc, mask, dx)

Conventions
-----------
- Device pointers are represented as uintptr_t handles (Python int).
- Handles and descriptors are opaque `void*` values (Python int).
- Tensors are contiguous in (N, C, *spatial) layout.
- Output-parameter functions receive `ctypes.pointer(...)` objects.
- Every non-zero status raises `NativeCallError`.
"""

from __future__ import annotations

import ctypes
from ctypes import POINTER, c_int, c_size_t, c_uint64, c_void_p
from typing import Sequence, Tuple

import numpy as np

from ....domain._errors import NativeCallError


DevPtr = int
Handle = int

CUDNN_DATA_FLOAT = 0
CUDNN_DATA_DOUBLE = 1


def cudnn_dtype_code(dtype: np.dtype) -> int:
    """
    Map a NumPy floating dtype to its cuDNN data-type code.

    Raises
    ------
    TypeError
        If `dtype` is neither float32 nor float64.
    """
    dtype = np.dtype(dtype)
    if dtype == np.float32:
        return CUDNN_DATA_FLOAT
    if dtype == np.float64:
        return CUDNN_DATA_DOUBLE
    raise TypeError(f"CUDA unpooling only supports float32/float64, got {dtype}")


def _int_array(values: Sequence[int]):
    return (c_int * len(values))(*[int(v) for v in values])


class CudaUnpoolLib:
    """
    Thin binding layer around the KeyUnpool CUDA native library.

    This class performs one-time `argtypes`/`restype` binding for exported
    symbols and exposes checked wrappers for every export.

    Notes
    -----
    - This class does not manage lifetimes; handles, descriptors and device
      buffers must be released by the caller (see `CudnnUnpoolResources`).
    """

    def __init__(self, lib: ctypes.CDLL) -> None:
        self.lib = lib
        self._cuda_utils_bound = False
        self._cudnn_bound = False
        self._unpool_bound = False

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------
    def _bind_cuda_utils(self) -> None:
        """Bind argtypes/restype for CUDA utility exports (idempotent)."""
        if self._cuda_utils_bound:
            return

        lib = self.lib
        lib.keyunpool_cuda_set_device.argtypes = [c_int]
        lib.keyunpool_cuda_set_device.restype = c_int

        lib.keyunpool_cuda_malloc.argtypes = [POINTER(c_uint64), c_size_t]
        lib.keyunpool_cuda_malloc.restype = c_int

        lib.keyunpool_cuda_free.argtypes = [c_uint64]
        lib.keyunpool_cuda_free.restype = c_int

        lib.keyunpool_cuda_memcpy_h2d.argtypes = [c_uint64, c_void_p, c_size_t]
        lib.keyunpool_cuda_memcpy_h2d.restype = c_int

        lib.keyunpool_cuda_memcpy_d2h.argtypes = [c_void_p, c_uint64, c_size_t]
        lib.keyunpool_cuda_memcpy_d2h.restype = c_int

        lib.keyunpool_cuda_memset.argtypes = [c_uint64, c_int, c_size_t]
        lib.keyunpool_cuda_memset.restype = c_int

        lib.keyunpool_cuda_synchronize.argtypes = []
        lib.keyunpool_cuda_synchronize.restype = c_int

        self._cuda_utils_bound = True

    def _bind_cudnn(self) -> None:
        """Bind argtypes/restype for handle and descriptor exports (idempotent)."""
        if self._cudnn_bound:
            return

        lib = self.lib
        for name in (
            "keyunpool_cudnn_create",
            "keyunpool_cudnn_create_tensor_desc",
            "keyunpool_cudnn_create_pooling_desc",
        ):
            fn = getattr(lib, name)
            fn.argtypes = [POINTER(c_void_p)]
            fn.restype = c_int

        for name in (
            "keyunpool_cudnn_destroy",
            "keyunpool_cudnn_destroy_tensor_desc",
            "keyunpool_cudnn_destroy_pooling_desc",
        ):
            fn = getattr(lib, name)
            fn.argtypes = [c_void_p]
            fn.restype = c_int

        lib.keyunpool_cudnn_set_tensor_nd_desc.argtypes = [
            c_void_p,  # desc
            c_int,  # dtype code
            c_int,  # nb_dims
            POINTER(c_int),  # dims
        ]
        lib.keyunpool_cudnn_set_tensor_nd_desc.restype = c_int

        lib.keyunpool_cudnn_set_pooling_nd_desc.argtypes = [
            c_void_p,  # desc
            c_int,  # nb_spatial
            POINTER(c_int),  # window
            POINTER(c_int),  # pad
            POINTER(c_int),  # stride
        ]
        lib.keyunpool_cudnn_set_pooling_nd_desc.restype = c_int

        lib.keyunpool_cudnn_get_pooling_nd_output_dim.argtypes = [
            c_void_p,  # pooling desc
            c_void_p,  # input tensor desc
            c_int,  # nb_dims
            POINTER(c_int),  # out dims
        ]
        lib.keyunpool_cudnn_get_pooling_nd_output_dim.restype = c_int

        self._cudnn_bound = True

    def _bind_unpool(self) -> None:
        """Bind argtypes/restype for the unpooling kernels (idempotent)."""
        if self._unpool_bound:
            return

        lib = self.lib
        for suffix in ("f32", "f64"):
            for direction in ("forward", "backward"):
                fn = getattr(lib, f"keyunpool_cudnn_unpool_{direction}_{suffix}")
                fn.argtypes = [
                    c_void_p,  # handle
                    c_void_p,  # pooling desc
                    c_void_p,  # src desc
                    c_void_p,  # src (device)
                    c_void_p,  # mask (device, int64) / desc
                    c_void_p,  # dst desc / mask
                    c_void_p,  # dst (device)
                ]
                fn.restype = c_int

        self._unpool_bound = True

    @staticmethod
    def _as_ptr(value: int) -> c_void_p:
        """Convert a device pointer or opaque handle into a ctypes void*."""
        return c_void_p(int(value))

    @staticmethod
    def _check(symbol: str, status: int) -> None:
        if status != 0:
            raise NativeCallError(symbol, int(status))

    # ------------------------------------------------------------------
    # CUDA utils
    # ------------------------------------------------------------------
    def cuda_set_device(self, device: int = 0) -> None:
        """Set the current CUDA device."""
        self._bind_cuda_utils()
        st = self.lib.keyunpool_cuda_set_device(int(device))
        self._check("keyunpool_cuda_set_device", st)

    def cuda_malloc(self, nbytes: int) -> DevPtr:
        """
        Allocate device memory and return its device pointer handle.

        Raises
        ------
        NativeCallError
            If allocation fails or returns a null pointer.
        """
        self._bind_cuda_utils()
        out = c_uint64(0)
        st = self.lib.keyunpool_cuda_malloc(ctypes.pointer(out), c_size_t(int(nbytes)))
        if st == 0 and out.value == 0 and int(nbytes) > 0:
            st = -1
        self._check("keyunpool_cuda_malloc", st)
        return int(out.value)

    def cuda_free(self, dev_ptr: DevPtr) -> None:
        """Free device memory. Passing 0 is a no-op."""
        if int(dev_ptr) == 0:
            return
        self._bind_cuda_utils()
        st = self.lib.keyunpool_cuda_free(c_uint64(int(dev_ptr)))
        self._check("keyunpool_cuda_free", st)

    def cuda_memcpy_h2d(self, dst_dev: DevPtr, src_host: np.ndarray) -> None:
        """Copy a host array to a device buffer (made contiguous if needed)."""
        self._bind_cuda_utils()
        if not src_host.flags["C_CONTIGUOUS"]:
            src_host = np.ascontiguousarray(src_host)
        st = self.lib.keyunpool_cuda_memcpy_h2d(
            c_uint64(int(dst_dev)),
            c_void_p(int(src_host.ctypes.data)),
            c_size_t(int(src_host.nbytes)),
        )
        self._check("keyunpool_cuda_memcpy_h2d", st)

    def cuda_memcpy_d2h(self, dst_host: np.ndarray, src_dev: DevPtr) -> None:
        """
        Copy a device buffer into a host array.

        Raises
        ------
        ValueError
            If `dst_host` is not C-contiguous.
        """
        self._bind_cuda_utils()
        if not dst_host.flags["C_CONTIGUOUS"]:
            raise ValueError("dst_host must be C-contiguous")
        st = self.lib.keyunpool_cuda_memcpy_d2h(
            c_void_p(int(dst_host.ctypes.data)),
            c_uint64(int(src_dev)),
            c_size_t(int(dst_host.nbytes)),
        )
        self._check("keyunpool_cuda_memcpy_d2h", st)

    def cuda_memset(self, dev_ptr: DevPtr, value: int, nbytes: int) -> None:
        """Set a device buffer to a byte value."""
        self._bind_cuda_utils()
        st = self.lib.keyunpool_cuda_memset(
            c_uint64(int(dev_ptr)), c_int(int(value)), c_size_t(int(nbytes))
        )
        self._check("keyunpool_cuda_memset", st)

    def cuda_synchronize(self) -> None:
        """Synchronize the device (blocking)."""
        self._bind_cuda_utils()
        self._check("keyunpool_cuda_synchronize", self.lib.keyunpool_cuda_synchronize())

    def cuda_from_host(self, x: np.ndarray) -> DevPtr:
        """
        Allocate a device buffer and upload a host array into it.

        The allocation is released again if the upload fails.
        """
        if not x.flags["C_CONTIGUOUS"]:
            x = np.ascontiguousarray(x)
        dev = self.cuda_malloc(x.nbytes)
        try:
            self.cuda_memcpy_h2d(dev, x)
        except Exception:
            self.cuda_free(dev)
            raise
        return dev

    # ------------------------------------------------------------------
    # cuDNN handle / descriptors
    # ------------------------------------------------------------------
    def _create_opaque(self, symbol: str) -> Handle:
        self._bind_cudnn()
        out = c_void_p(0)
        st = getattr(self.lib, symbol)(ctypes.pointer(out))
        if st == 0 and not out.value:
            st = -1
        self._check(symbol, st)
        return int(out.value)

    def _destroy_opaque(self, symbol: str, handle: Handle) -> None:
        self._bind_cudnn()
        st = getattr(self.lib, symbol)(self._as_ptr(handle))
        self._check(symbol, st)

    def cudnn_create(self) -> Handle:
        return self._create_opaque("keyunpool_cudnn_create")

    def cudnn_destroy(self, handle: Handle) -> None:
        self._destroy_opaque("keyunpool_cudnn_destroy", handle)

    def create_tensor_desc(self) -> Handle:
        return self._create_opaque("keyunpool_cudnn_create_tensor_desc")

    def destroy_tensor_desc(self, desc: Handle) -> None:
        self._destroy_opaque("keyunpool_cudnn_destroy_tensor_desc", desc)

    def create_pooling_desc(self) -> Handle:
        return self._create_opaque("keyunpool_cudnn_create_pooling_desc")

    def destroy_pooling_desc(self, desc: Handle) -> None:
        self._destroy_opaque("keyunpool_cudnn_destroy_pooling_desc", desc)

    def set_tensor_nd_desc(
        self, desc: Handle, dtype: np.dtype, dims: Sequence[int]
    ) -> None:
        """Describe a contiguous tensor of shape `dims`."""
        self._bind_cudnn()
        st = self.lib.keyunpool_cudnn_set_tensor_nd_desc(
            self._as_ptr(desc),
            c_int(cudnn_dtype_code(dtype)),
            c_int(len(dims)),
            _int_array(dims),
        )
        self._check("keyunpool_cudnn_set_tensor_nd_desc", st)

    def set_pooling_nd_desc(
        self,
        desc: Handle,
        window: Sequence[int],
        pad: Sequence[int],
        stride: Sequence[int],
    ) -> None:
        """Describe the max-pooling window that the unpooling inverts."""
        self._bind_cudnn()
        st = self.lib.keyunpool_cudnn_set_pooling_nd_desc(
            self._as_ptr(desc),
            c_int(len(window)),
            _int_array(window),
            _int_array(pad),
            _int_array(stride),
        )
        self._check("keyunpool_cudnn_set_pooling_nd_desc", st)

    def get_pooling_nd_output_dim(
        self, pooling_desc: Handle, input_desc: Handle, nb_dims: int
    ) -> Tuple[int, ...]:
        """Return the pooled shape that `pooling_desc` produces for `input_desc`."""
        self._bind_cudnn()
        out = (c_int * int(nb_dims))()
        st = self.lib.keyunpool_cudnn_get_pooling_nd_output_dim(
            self._as_ptr(pooling_desc),
            self._as_ptr(input_desc),
            c_int(int(nb_dims)),
            out,
        )
        self._check("keyunpool_cudnn_get_pooling_nd_output_dim", st)
        return tuple(int(v) for v in out)

    # ------------------------------------------------------------------
    # Unpooling
    # ------------------------------------------------------------------
    def unpool_forward(
        self,
        *,
        handle: Handle,
        pooling_desc: Handle,
        bottom_desc: Handle,
        x_dev: DevPtr,
        mask_dev: DevPtr,
        top_desc: Handle,
        y_dev: DevPtr,
        dtype: np.dtype,
        sync: bool = True,
    ) -> None:
        """
        Scatter `x_dev` into the zero-initialized `y_dev` per `mask_dev`.
        """
        self._bind_unpool()
        suffix = "f32" if cudnn_dtype_code(dtype) == CUDNN_DATA_FLOAT else "f64"
        symbol = f"keyunpool_cudnn_unpool_forward_{suffix}"
        st = getattr(self.lib, symbol)(
            self._as_ptr(handle),
            self._as_ptr(pooling_desc),
            self._as_ptr(bottom_desc),
            self._as_ptr(x_dev),
            self._as_ptr(mask_dev),
            self._as_ptr(top_desc),
            self._as_ptr(y_dev),
        )
        self._check(symbol, st)
        if sync:
            self.cuda_synchronize()

    def unpool_backward(
        self,
        *,
        handle: Handle,
        pooling_desc: Handle,
        top_desc: Handle,
        dy_dev: DevPtr,
        bottom_desc: Handle,
        mask_dev: DevPtr,
        dx_dev: DevPtr,
        dtype: np.dtype,
        sync: bool = True,
    ) -> None:
        """
        Gather `dy_dev` into the zero-initialized `dx_dev` per `mask_dev`.
        """
        self._bind_unpool()
        suffix = "f32" if cudnn_dtype_code(dtype) == CUDNN_DATA_FLOAT else "f64"
        symbol = f"keyunpool_cudnn_unpool_backward_{suffix}"
        st = getattr(self.lib, symbol)(
            self._as_ptr(handle),
            self._as_ptr(pooling_desc),
            self._as_ptr(top_desc),
            self._as_ptr(dy_dev),
            self._as_ptr(bottom_desc),
            self._as_ptr(mask_dev),
            self._as_ptr(dx_dev),
        )
        self._check(symbol, st)
        if sync:
            self.cuda_synchronize()


# ---------------------------------------------------------------------
# Cached wrapper
# ---------------------------------------------------------------------

_cuda_singleton: CudaUnpoolLib | None = None


def get_cuda_unpool_lib(lib: ctypes.CDLL) -> CudaUnpoolLib:
    """
    Return a cached `CudaUnpoolLib` wrapper for a given loaded library.

    This avoids repeating argtype binding on every call.
    """
    global _cuda_singleton
    if _cuda_singleton is None or _cuda_singleton.lib is not lib:
        _cuda_singleton = CudaUnpoolLib(lib)
    return _cuda_singleton
