import json
import unittest

import numpy as np

from keyunpool.domain._errors import UnpoolingConfigError, UnpoolingShapeError
from keyunpool.infrastructure._blob import Blob
from keyunpool.infrastructure.ops.unpool_cpu import (
    unpool2d_backward_cpu,
    unpool2d_forward_cpu,
)
from keyunpool.infrastructure.unpooling import (
    ReferenceUnpooling,
    UnpoolingLayer,
    UnpoolingParameter,
)


def _random_mask(shape, area: int) -> np.ndarray:
    return np.random.randint(0, area, size=shape).astype(np.float32)


class TestUnpoolingLayerShapes(unittest.TestCase):
    def setUp(self) -> None:
        np.random.seed(0)

    def test_top_shape_matrix(self):
        cases = [
            # (x_shape, fields, expected_top)
            ((2, 3, 2, 2), dict(kernel_size=2, stride=2), (2, 3, 4, 4)),
            ((1, 1, 3, 5), dict(kernel_h=3, kernel_w=2, stride_h=1, stride_w=2, pad_h=1, pad_w=0), (1, 1, 3, 10)),
            ((1, 4, 4, 4), dict(kernel_size=3, stride=2, pad=1), (1, 4, 7, 7)),
            ((3, 2, 5, 1), dict(kernel_size=2), (3, 2, 6, 2)),
        ]
        for x_shape, fields, expected in cases:
            with self.subTest(x_shape=x_shape, fields=fields):
                layer = UnpoolingLayer(UnpoolingParameter(engine="cpu", **fields))
                x = Blob(x_shape)
                mask = Blob(x_shape)
                top = Blob()
                layer.setup([x, mask], [top])
                self.assertEqual(top.shape, expected)
                self.assertEqual(layer.unpooled_shape, expected[2:])

    def test_resolved_hyperparameters_exposed(self):
        layer = UnpoolingLayer(
            UnpoolingParameter(kernel_h=3, kernel_w=2, pad=1, stride_h=2, stride_w=1, engine="cpu")
        )
        self.assertEqual(layer.kernel_size, (3, 2))
        self.assertEqual(layer.stride, (2, 1))
        self.assertEqual(layer.padding, (1, 1))
        self.assertEqual(layer.type, "Unpooling")
        self.assertEqual((layer.exact_num_bottom_blobs, layer.exact_num_top_blobs), (2, 1))
        self.assertIsInstance(layer.operator, ReferenceUnpooling)

    def test_reshape_follows_new_bottom_shape(self):
        layer = UnpoolingLayer(UnpoolingParameter(kernel_size=2, stride=2, engine="cpu"))
        x, mask, top = Blob((1, 1, 2, 2)), Blob((1, 1, 2, 2)), Blob()
        layer.setup([x, mask], [top])
        x.reshape(1, 1, 3, 3)
        mask.reshape(1, 1, 3, 3)
        layer.reshape([x, mask], [top])
        self.assertEqual(top.shape, (1, 1, 6, 6))

    def test_invalid_config_fails_at_construction(self):
        with self.assertRaises(UnpoolingConfigError):
            UnpoolingLayer(UnpoolingParameter(kernel_size=2, kernel_h=2, kernel_w=2, engine="cpu"))

    def test_blob_count_mismatch_raises(self):
        layer = UnpoolingLayer(UnpoolingParameter(kernel_size=2, engine="cpu"))
        x = Blob((1, 1, 2, 2))
        with self.assertRaises(UnpoolingShapeError):
            layer.setup([x], [Blob()])
        with self.assertRaises(UnpoolingShapeError):
            layer.setup([x, Blob((1, 1, 2, 2))], [Blob(), Blob()])

    def test_wrong_rank_and_mask_shape_raise(self):
        layer = UnpoolingLayer(UnpoolingParameter(kernel_size=2, engine="cpu"))
        with self.assertRaises(UnpoolingShapeError):
            layer.setup([Blob((1, 2, 2)), Blob((1, 2, 2))], [Blob()])
        with self.assertRaises(UnpoolingShapeError):
            layer.setup([Blob((1, 1, 2, 2)), Blob((1, 1, 2, 3))], [Blob()])

    def test_non_positive_output_raises(self):
        layer = UnpoolingLayer(UnpoolingParameter(kernel_size=2, pad=1, engine="cpu"))
        with self.assertRaises(UnpoolingShapeError):
            layer.setup([Blob((1, 1, 1, 1)), Blob((1, 1, 1, 1))], [Blob()])


class TestUnpoolingLayerForwardBackward(unittest.TestCase):
    def setUp(self) -> None:
        np.random.seed(0)

    def _run(self, x_np, mask_np, fields):
        layer = UnpoolingLayer(UnpoolingParameter(engine="cpu", **fields))
        x = Blob.from_numpy(x_np)
        mask = Blob.from_numpy(mask_np, dtype=x_np.dtype)
        top = Blob(dtype=x_np.dtype)
        layer.setup([x, mask], [top])
        layer.forward([x, mask], [top])
        return layer, x, mask, top

    def test_forward_matches_reference_kernel(self):
        for dtype in (np.float32, np.float64):
            with self.subTest(dtype=dtype):
                x_np = np.random.randn(2, 3, 3, 3).astype(dtype)
                mask_np = _random_mask(x_np.shape, 6 * 6)
                _, _, _, top = self._run(x_np, mask_np, dict(kernel_size=2, stride=2))

                ref = unpool2d_forward_cpu(x_np, mask_np, kernel_size=2, stride=2)
                np.testing.assert_array_equal(top.to_numpy(), ref)

    def test_documented_example(self):
        x_np = np.array([[[[1, 2], [3, 4]]]], dtype=np.float32)
        mask_np = np.array([[[[0, 3], [9, 15]]]], dtype=np.float32)
        _, _, _, top = self._run(x_np, mask_np, dict(kernel_size=2, stride=2))

        y = top.to_numpy()[0, 0].reshape(-1)
        self.assertEqual(y.tolist()[:4], [1.0, 0.0, 0.0, 2.0])
        self.assertEqual(y[9], 3.0)
        self.assertEqual(y[15], 4.0)
        self.assertEqual(float(y.sum()), 10.0)

    def test_backward_matches_reference_kernel(self):
        x_np = np.random.randn(1, 2, 4, 3).astype(np.float32)
        mask_np = _random_mask(x_np.shape, 8 * 6)
        layer, x, mask, top = self._run(x_np, mask_np, dict(kernel_size=2, stride=2))

        g = np.random.randn(*top.shape).astype(np.float32)
        top.copy_from_numpy(g, diff=True)
        layer.backward([top], [True, False], [x, mask])

        ref = unpool2d_backward_cpu(g, mask_np, x_shape=x_np.shape)
        np.testing.assert_array_equal(x.to_numpy(diff=True), ref)
        # The mask never receives a gradient.
        self.assertEqual(float(np.abs(mask.to_numpy(diff=True)).sum()), 0.0)

    def test_backward_of_forward_restores_input(self):
        x_np = np.random.randn(2, 2, 3, 3).astype(np.float32)
        mask_np = np.empty(x_np.shape, dtype=np.float32)
        for n in range(2):
            for c in range(2):
                mask_np[n, c] = np.random.permutation(6 * 6)[:9].reshape(3, 3)
        layer, x, mask, top = self._run(x_np, mask_np, dict(kernel_size=2, stride=2))

        top.copy_from_numpy(top.to_numpy(), diff=True)
        layer.backward([top], [True, False], [x, mask])

        np.testing.assert_array_equal(x.to_numpy(diff=True), x_np)

    def test_backward_is_noop_when_propagation_disabled(self):
        x_np = np.random.randn(1, 1, 2, 2).astype(np.float32)
        mask_np = np.array([[[[0, 1], [2, 3]]]], dtype=np.float32)
        layer, x, mask, top = self._run(x_np, mask_np, dict(kernel_size=2, stride=2))

        sentinel = np.full(x_np.shape, 7.0, dtype=np.float32)
        x.copy_from_numpy(sentinel, diff=True)
        top.copy_from_numpy(np.ones(top.shape, dtype=np.float32), diff=True)

        layer.backward([top], [False, False], [x, mask])

        np.testing.assert_array_equal(x.to_numpy(diff=True), sentinel)

    def test_repeated_forward_does_not_accumulate(self):
        x_np = np.random.randn(1, 1, 2, 2).astype(np.float32)
        mask_np = np.array([[[[0, 5], [10, 15]]]], dtype=np.float32)
        layer, x, mask, top = self._run(x_np, mask_np, dict(kernel_size=2, stride=2))
        first = top.to_numpy()

        layer.forward([x, mask], [top])

        np.testing.assert_array_equal(top.to_numpy(), first)


class TestUnpoolingLayerConfig(unittest.TestCase):
    def test_get_config_from_config_roundtrip(self):
        layer = UnpoolingLayer(UnpoolingParameter(kernel_h=3, kernel_w=2, stride=2, engine="cpu"))
        cfg = json.loads(json.dumps(layer.get_config()))

        rebuilt = UnpoolingLayer.from_config(cfg)

        self.assertEqual(rebuilt.param, layer.param)
        self.assertEqual(rebuilt.kernel_size, (3, 2))
        self.assertEqual(rebuilt.stride, (2, 2))

    def test_accepts_dict_param(self):
        layer = UnpoolingLayer({"kernel_size": 2, "engine": "cpu"})
        self.assertEqual(layer.kernel_size, (2, 2))

    def test_context_manager_closes_operator(self):
        closed = []

        class _Op(ReferenceUnpooling):
            def close(self) -> None:
                closed.append(True)

        with UnpoolingLayer(UnpoolingParameter(kernel_size=2, engine="cpu"), operator=_Op()) as layer:
            self.assertIsInstance(layer.operator, _Op)
        self.assertEqual(closed, [True])


if __name__ == "__main__":
    unittest.main()
