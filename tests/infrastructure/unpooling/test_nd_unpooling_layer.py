import unittest

import numpy as np

from keyunpool.domain._errors import UnpoolingConfigError, UnpoolingShapeError
from keyunpool.infrastructure._blob import Blob
from keyunpool.infrastructure.ops.unpool_cpu import unpool_forward_cpu
from keyunpool.infrastructure.unpooling import (
    NdUnpoolingLayer,
    NdUnpoolingParameter,
    UnpoolingLayer,
    UnpoolingParameter,
)


class TestNdUnpoolingLayer(unittest.TestCase):
    def setUp(self) -> None:
        np.random.seed(0)

    def test_output_shape_matrix(self):
        cases = [
            # (x_shape, param_fields, expected_top)
            ((1, 2, 3), dict(kernel_shape=(2,), stride_shape=(2,)), (1, 2, 6)),
            ((2, 1, 2, 3), dict(kernel_shape=(2, 3), stride_shape=(2, 1)), (2, 1, 4, 5)),
            ((1, 1, 2, 2, 2), dict(kernel_shape=(2,), stride_shape=(2,)), (1, 1, 4, 4, 4)),
            ((1, 3, 4, 4, 2), dict(kernel_shape=(3,), stride_shape=(2,), pad_shape=(1, 1, 0)), (1, 3, 7, 7, 5)),
        ]
        for x_shape, fields, expected in cases:
            with self.subTest(x_shape=x_shape, fields=fields):
                layer = NdUnpoolingLayer(NdUnpoolingParameter(engine="cpu", **fields))
                top = Blob()
                layer.setup([Blob(x_shape), Blob(x_shape)], [top])
                self.assertEqual(top.shape, expected)
                self.assertEqual(layer.compute_output_shape(), expected)

    def test_agrees_with_2d_layer_on_4d_input(self):
        x_np = np.random.randn(2, 3, 3, 4).astype(np.float32)
        mask_np = np.random.randint(0, 6 * 8, size=x_np.shape).astype(np.float32)

        nd = NdUnpoolingLayer(NdUnpoolingParameter(kernel_shape=(2,), stride_shape=(2,), engine="cpu"))
        two_d = UnpoolingLayer(UnpoolingParameter(kernel_size=2, stride=2, engine="cpu"))

        tops = []
        for layer in (nd, two_d):
            x, mask, top = Blob.from_numpy(x_np), Blob.from_numpy(mask_np), Blob()
            layer.setup([x, mask], [top])
            layer.forward([x, mask], [top])
            tops.append(top.to_numpy())

        np.testing.assert_array_equal(tops[0], tops[1])

    def test_forward_backward_three_spatial_axes(self):
        x_np = np.random.randn(1, 2, 2, 2, 2)
        mask_np = np.random.randint(0, 64, size=x_np.shape).astype(np.float64)
        layer = NdUnpoolingLayer(NdUnpoolingParameter(kernel_shape=(2,), stride_shape=(2,), engine="cpu"))
        x, mask, top = Blob.from_numpy(x_np), Blob.from_numpy(mask_np), Blob(dtype=np.float64)

        layer.setup([x, mask], [top])
        layer.forward([x, mask], [top])

        ref = np.empty((1, 2, 4, 4, 4))
        unpool_forward_cpu(x_np, mask_np, ref)
        np.testing.assert_array_equal(top.to_numpy(), ref)

        top.copy_from_numpy(np.ones(top.shape), diff=True)
        layer.backward([top], [True, False], [x, mask])
        np.testing.assert_array_equal(x.to_numpy(diff=True), np.ones(x_np.shape))

    def test_global_mode_kernel_tracks_input(self):
        layer = NdUnpoolingLayer(NdUnpoolingParameter(global_pooling=True, engine="cpu"))
        top = Blob()
        layer.setup([Blob((1, 1, 3, 2)), Blob((1, 1, 3, 2))], [top])

        self.assertEqual(layer.meta.kernel_shape, (3, 2))
        self.assertEqual(layer.meta.stride_shape, (1, 1))
        self.assertEqual(layer.meta.pad_shape, (0, 0))
        self.assertEqual(top.shape, (1, 1, 5, 3))

    def test_construction_rejects_contradictory_global_config(self):
        with self.assertRaises(UnpoolingConfigError):
            NdUnpoolingLayer(NdUnpoolingParameter(global_pooling=True, kernel_shape=(2,), engine="cpu"))
        with self.assertRaises(UnpoolingConfigError):
            NdUnpoolingLayer(NdUnpoolingParameter(engine="cpu"))

    def test_rank_dependent_errors_raise_on_reshape(self):
        layer = NdUnpoolingLayer(NdUnpoolingParameter(kernel_shape=(2, 2), engine="cpu"))
        with self.assertRaises(UnpoolingConfigError):
            layer.setup([Blob((1, 1, 2, 2, 2)), Blob((1, 1, 2, 2, 2))], [Blob()])
        with self.assertRaises(UnpoolingShapeError):
            layer.setup([Blob((1, 1)), Blob((1, 1))], [Blob()])

    def test_compute_output_shape_requires_reshape(self):
        layer = NdUnpoolingLayer(NdUnpoolingParameter(kernel_shape=(2,), engine="cpu"))
        with self.assertRaises(RuntimeError):
            layer.compute_output_shape()

    def test_config_roundtrip(self):
        layer = NdUnpoolingLayer(
            NdUnpoolingParameter(kernel_shape=(2, 3), stride_shape=(2,), engine="cpu")
        )
        rebuilt = NdUnpoolingLayer.from_config(layer.get_config())
        self.assertEqual(rebuilt.param, layer.param)
        self.assertEqual(rebuilt.type, "NdUnpooling")


if __name__ == "__main__":
    unittest.main()
