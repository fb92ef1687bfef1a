"""
Unit tests for the KeyUnpool CUDA/cuDNN unpooling ctypes bindings.

These tests use Python's built-in `unittest` library and validate:
- native library loading (or skip cleanly)
- CUDA device availability (or skip cleanly)
- CUDA utils: malloc/free, memcpy roundtrip, memset
- cuDNN resource lifecycle against the real library
- unpooling forward/backward correctness vs NumPy reference (float32/float64)

To override the library path at runtime, set:
    KEYUNPOOL_CUDA_NATIVE=/abs/path/to/libkeyunpool_cuda_native.so

If the library or a CUDA device is not available, tests are skipped.
"""

from __future__ import annotations

import unittest

import numpy as np

from keyunpool.domain._errors import NativeCallError
from keyunpool.infrastructure.native_cuda.python import (
    CudnnUnpoolResources,
    get_cuda_unpool_lib,
    load_keyunpool_cuda_native,
)
from keyunpool.infrastructure.ops.unpool_cpu import unpool_backward_cpu, unpool_forward_cpu
from keyunpool.infrastructure.ops.unpool_cuda import unpool_backward_cuda, unpool_forward_cuda


class TestUnpoolCudaCtypes(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        # Load library (skip all tests if missing / unloadable)
        try:
            raw = load_keyunpool_cuda_native()
        except FileNotFoundError as e:
            raise unittest.SkipTest(
                f"CUDA native library not found. Set KEYUNPOOL_CUDA_NATIVE to override. Details: {e}"
            )
        except OSError as e:
            raise unittest.SkipTest(
                f"Failed to load CUDA native library (deps/arch/CUDA runtime). Details: {e}"
            )

        cls.lib = get_cuda_unpool_lib(raw)

        # Ensure CUDA device is available (skip all tests if not)
        try:
            cls.lib.cuda_set_device(0)
        except (NativeCallError, AttributeError) as e:
            raise unittest.SkipTest(
                f"CUDA device not available / set_device failed. Details: {e}"
            )

    def test_cuda_malloc_free_smoke(self) -> None:
        dev = self.lib.cuda_malloc(256)
        try:
            self.assertIsInstance(dev, int)
            self.assertNotEqual(dev, 0)
        finally:
            self.lib.cuda_free(dev)

    def test_cuda_memcpy_roundtrip_and_memset(self) -> None:
        x = (np.arange(128, dtype=np.float32) * 0.25).reshape(32, 4)
        dev = self.lib.cuda_from_host(x)
        y = np.empty_like(x)
        try:
            self.lib.cuda_memcpy_d2h(y, dev)
            np.testing.assert_allclose(y, x, rtol=0.0, atol=0.0)

            self.lib.cuda_memset(dev, 0, x.nbytes)
            self.lib.cuda_synchronize()
            self.lib.cuda_memcpy_d2h(y, dev)
            self.assertTrue(np.all(y == 0.0))
        finally:
            self.lib.cuda_free(dev)

    def test_resources_create_and_close(self) -> None:
        res = CudnnUnpoolResources.create(
            self.lib,
            bottom_shape=(1, 1, 2, 2),
            top_shape=(1, 1, 4, 4),
            kernel=(2, 2),
            pad=(0, 0),
            stride=(2, 2),
        )
        self.assertNotEqual(res.handle, 0)
        res.close()
        res.close()
        self.assertTrue(res.closed)

    def _run_case(self, dtype) -> None:
        N, C, H, W = 2, 3, 3, 4
        k, s = (2, 2), (2, 2)
        H_out, W_out = (H - 1) * s[0] + k[0], (W - 1) * s[1] + k[1]

        rng = np.random.default_rng(0)
        x = rng.standard_normal((N, C, H, W)).astype(dtype)
        # One position per window: collision-free, like a real pooling mask.
        mask = np.empty((N, C, H, W), dtype=np.int64)
        for i in range(H):
            for j in range(W):
                di, dj = rng.integers(0, 2, size=2)
                mask[:, :, i, j] = (i * s[0] + di) * W_out + (j * s[1] + dj)

        with CudnnUnpoolResources.create(
            self.lib,
            bottom_shape=x.shape,
            top_shape=(N, C, H_out, W_out),
            kernel=k,
            pad=(0, 0),
            stride=s,
            dtype=dtype,
        ) as res:
            y = np.empty((N, C, H_out, W_out), dtype=dtype)
            unpool_forward_cuda(self.lib, res, x, mask, y)
            y_ref = unpool_forward_cpu(x, mask, np.empty_like(y))
            np.testing.assert_array_equal(y, y_ref)

            g = rng.standard_normal(y.shape).astype(dtype)
            gx = np.empty_like(x)
            unpool_backward_cuda(self.lib, res, g, mask, gx)
            gx_ref = unpool_backward_cpu(g, mask, np.empty_like(x))
            np.testing.assert_array_equal(gx, gx_ref)

    def test_unpool_f32(self) -> None:
        self._run_case(np.float32)

    def test_unpool_f64(self) -> None:
        self._run_case(np.float64)


if __name__ == "__main__":
    unittest.main()
