import unittest

from keyunpool.domain._errors import UnpoolingConfigError
from keyunpool.infrastructure.unpooling._unpooling_param import (
    NdUnpoolingParameter,
    Unpool2dMeta,
    UnpoolingParameter,
    resolve_unpool2d_param,
    resolve_unpool_nd_param,
)


class TestResolveUnpool2dParam(unittest.TestCase):
    def test_valid_configurations_resolve(self):
        cases = [
            # (fields, kernel, stride, padding)
            (dict(kernel_size=2), (2, 2), (1, 1), (0, 0)),
            (dict(kernel_size=2, stride=2), (2, 2), (2, 2), (0, 0)),
            (dict(kernel_h=3, kernel_w=2, stride_h=1, stride_w=2), (3, 2), (1, 2), (0, 0)),
            (dict(kernel_size=3, pad=1, stride=2), (3, 3), (2, 2), (1, 1)),
            (dict(kernel_size=3, pad_h=1, pad_w=0), (3, 3), (1, 1), (1, 0)),
            (dict(kernel_h=1, kernel_w=4, stride=3), (1, 4), (3, 3), (0, 0)),
        ]
        for fields, k, s, p in cases:
            with self.subTest(fields=fields):
                meta = resolve_unpool2d_param(UnpoolingParameter(**fields))
                self.assertEqual(meta, Unpool2dMeta(kernel_size=k, stride=s, padding=p))

    def test_rejections_carry_the_expected_message(self):
        cases = [
            (dict(kernel_size=2, kernel_h=2, kernel_w=2), "not both"),
            (dict(kernel_size=2, kernel_h=2), "not both"),
            (dict(), "both kernel_h and kernel_w are required"),
            (dict(kernel_h=2), "both kernel_h and kernel_w are required"),
            (dict(kernel_size=2, pad=1, pad_h=1, pad_w=1), "pad is pad OR pad_h and pad_w"),
            (dict(kernel_size=2, pad_h=1), "pad is pad OR pad_h and pad_w"),
            (dict(kernel_size=2, stride=1, stride_h=1, stride_w=1), "Stride is stride OR"),
            (dict(kernel_size=2, stride_w=1), "Stride is stride OR"),
            (dict(kernel_size=0), "Filter dimensions cannot be zero."),
            (dict(kernel_h=2, kernel_w=0), "Filter dimensions cannot be zero."),
        ]
        for fields, fragment in cases:
            with self.subTest(fields=fields):
                with self.assertRaises(UnpoolingConfigError) as cm:
                    resolve_unpool2d_param(UnpoolingParameter(**fields))
                self.assertIn(fragment, str(cm.exception))

    def test_pad_must_be_smaller_than_kernel_when_nonzero(self):
        for fields in (
            dict(kernel_size=2, pad=2),
            dict(kernel_size=3, pad_h=0, pad_w=3),
            dict(kernel_h=1, kernel_w=3, pad=1),
        ):
            with self.subTest(fields=fields):
                with self.assertRaises(UnpoolingConfigError):
                    resolve_unpool2d_param(UnpoolingParameter(**fields))

    def test_negative_pad_and_non_positive_stride_rejected(self):
        for fields in (dict(kernel_size=2, pad=-1), dict(kernel_size=2, stride=0)):
            with self.subTest(fields=fields):
                with self.assertRaises(UnpoolingConfigError):
                    resolve_unpool2d_param(UnpoolingParameter(**fields))

    def test_config_errors_are_value_errors(self):
        with self.assertRaises(ValueError):
            resolve_unpool2d_param(UnpoolingParameter())


class TestUnpoolingParameterRecord(unittest.TestCase):
    def test_from_dict_to_dict_keeps_only_set_fields(self):
        p = UnpoolingParameter.from_dict({"kernel_size": 2, "stride": 2, "engine": "cpu"})
        self.assertEqual(
            p.to_dict(),
            {"kernel_size": 2, "stride": 2, "engine": "cpu", "check_mask": True},
        )

    def test_unknown_key_rejected(self):
        with self.assertRaises(UnpoolingConfigError):
            UnpoolingParameter.from_dict({"kernel_size": 2, "dilation": 1})

    def test_unknown_engine_rejected(self):
        with self.assertRaises(UnpoolingConfigError):
            UnpoolingParameter(kernel_size=2, engine="tpu")

    def test_nd_record_normalizes_lists(self):
        p = NdUnpoolingParameter.from_dict({"kernel_shape": [2, 3], "stride_shape": 2})
        self.assertEqual(p.kernel_shape, (2, 3))
        self.assertEqual(p.stride_shape, (2,))
        self.assertEqual(p.to_dict()["kernel_shape"], [2, 3])


class TestResolveUnpoolNdParam(unittest.TestCase):
    def test_broadcast_and_per_axis_lists(self):
        cases = [
            # (param, axes, kernel, stride, pad)
            (NdUnpoolingParameter(kernel_shape=(2,)), 3, (2, 2, 2), (1, 1, 1), (0, 0, 0)),
            (
                NdUnpoolingParameter(kernel_shape=(2, 3), stride_shape=(2,), pad_shape=(1, 0)),
                2,
                (2, 3),
                (2, 2),
                (1, 0),
            ),
            (
                NdUnpoolingParameter(kernel_shape=(3,), stride_shape=(1, 2, 3)),
                3,
                (3, 3, 3),
                (1, 2, 3),
                (0, 0, 0),
            ),
        ]
        for param, axes, k, s, p in cases:
            with self.subTest(param=param):
                meta = resolve_unpool_nd_param(param, axes)
                self.assertEqual(meta.kernel_shape, k)
                self.assertEqual(meta.stride_shape, s)
                self.assertEqual(meta.pad_shape, p)
                self.assertEqual(meta.num_spatial_axes, axes)

    def test_wrong_list_length_rejected(self):
        with self.assertRaises(UnpoolingConfigError):
            resolve_unpool_nd_param(NdUnpoolingParameter(kernel_shape=(2, 2)), 3)

    def test_missing_kernel_rejected(self):
        with self.assertRaises(UnpoolingConfigError):
            resolve_unpool_nd_param(NdUnpoolingParameter(), 2)

    def test_zero_kernel_and_large_pad_rejected(self):
        for param in (
            NdUnpoolingParameter(kernel_shape=(2, 0)),
            NdUnpoolingParameter(kernel_shape=(2,), pad_shape=(2,)),
        ):
            with self.subTest(param=param):
                with self.assertRaises(UnpoolingConfigError):
                    resolve_unpool_nd_param(param, 2)

    def test_global_mode_uses_input_extent(self):
        meta = resolve_unpool_nd_param(
            NdUnpoolingParameter(global_pooling=True), 2, input_spatial_shape=(5, 7)
        )
        self.assertEqual(meta.kernel_shape, (5, 7))
        self.assertEqual(meta.stride_shape, (1, 1))
        self.assertEqual(meta.pad_shape, (0, 0))

    def test_global_mode_rejections(self):
        cases = [
            (NdUnpoolingParameter(global_pooling=True, kernel_shape=(2,)), (4, 4)),
            (NdUnpoolingParameter(global_pooling=True, pad_shape=(1,)), (4, 4)),
            (NdUnpoolingParameter(global_pooling=True, stride_shape=(2,)), (4, 4)),
            (NdUnpoolingParameter(global_pooling=True), None),
        ]
        for param, spatial in cases:
            with self.subTest(param=param, spatial=spatial):
                with self.assertRaises(UnpoolingConfigError):
                    resolve_unpool_nd_param(param, 2, input_spatial_shape=spatial)


if __name__ == "__main__":
    unittest.main()
