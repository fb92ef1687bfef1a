"""
N-dimensional max-unpooling layer.

`NdUnpoolingLayer` generalizes `UnpoolingLayer` to any number (>= 1) of
spatial axes, with per-axis kernel / pad / stride lists and an optional
global mode. It is the layer usually paired with the accelerated operator,
but runs on the NumPy reference operator whenever the CUDA backend is not
available.

Blob contract
-------------
bottom[0] : (N, C, *in_spatial)
bottom[1] : (N, C, *in_spatial)   mask, flat index per (n, c) slice
top[0]    : (N, C, *out_spatial)

with, on every spatial axis i:
    out_i = (in_i - 1) * stride_i + kernel_i - 2 * pad_i

In global mode the kernel equals the input extent, stride is 1 and pad 0.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

from ...domain._blob import IBlob
from ...domain._errors import UnpoolingConfigError, UnpoolingShapeError
from ..ops.unpool_cpu import unpooled_shape_nd
from ._registry import register_layer
from ._unpooling_layer import _UnpoolingLayerBase
from ._unpooling_param import NdUnpoolingParameter, UnpoolNdMeta, resolve_unpool_nd_param


@register_layer("NdUnpooling")
class NdUnpoolingLayer(_UnpoolingLayerBase):
    """
    N-D max-unpooling layer.

    Parameters
    ----------
    param : NdUnpoolingParameter or dict
        Parameter record (or its dict form).
    name : str, optional
        Layer name in the model description.
    operator : IUnpoolingOperator, optional
        Explicit execution backend. If None, one is selected from
        `param.engine`.

    Notes
    -----
    The number of spatial axes is only known once the bottom blobs are seen,
    so parameter resolution happens in `reshape`, not at construction.
    """

    PARAM_CLS = NdUnpoolingParameter

    def __init__(
        self,
        param: NdUnpoolingParameter | Dict[str, Any],
        *,
        name: str = "",
        operator: Any = None,
    ) -> None:
        self._bottom_shape: Optional[Tuple[int, ...]] = None
        super().__init__(param, name=name, operator=operator)

    def _configure(self) -> None:
        # Rank-independent rules fail at construction; the rest in reshape.
        p = self.param
        if p.global_pooling and p.kernel_shape:
            raise UnpoolingConfigError(
                "With global_pooling: true Filter size cannot be specified"
            )
        if not p.global_pooling and not p.kernel_shape:
            raise UnpoolingConfigError("kernel_shape is required unless global_pooling")
        if any(k <= 0 for k in p.kernel_shape):
            raise UnpoolingConfigError("Filter dimensions must be nonzero.")

    @property
    def type(self) -> str:
        return "NdUnpooling"

    @property
    def meta(self) -> Optional[UnpoolNdMeta]:
        """Resolved per-axis hyperparameters, or None before `reshape`."""
        return self._meta

    @property
    def global_pooling(self) -> bool:
        return bool(self.param.global_pooling)

    def compute_output_shape(self) -> Tuple[int, ...]:
        """
        Return the top shape (N, C, *out_spatial) for the current bottom shape.

        Raises
        ------
        RuntimeError
            If the layer has not been reshaped yet.
        """
        if self._bottom_shape is None or self._meta is None:
            raise RuntimeError("NdUnpoolingLayer.reshape() must be called first")
        N, C = self._bottom_shape[:2]
        out = unpooled_shape_nd(
            self._bottom_shape[2:],
            self._meta.kernel_shape,
            self._meta.stride_shape,
            self._meta.pad_shape,
        )
        return (N, C) + tuple(out)

    def reshape(self, bottom: Sequence[IBlob], top: Sequence[IBlob]) -> None:
        """
        Resolve the parameters for the input rank and size top[0].

        Raises
        ------
        UnpoolingConfigError
            If the parameter lists do not fit the number of spatial axes.
        UnpoolingShapeError
            If bottom[0] has fewer than 3 axes, the mask shape differs, or
            an unpooled extent is not positive.
        """
        self._check_blob_counts(bottom, top)
        shape = tuple(bottom[0].shape)
        if len(shape) < 3:
            raise UnpoolingShapeError(
                "Input must have at least 3 axes, corresponding to "
                f"(num, channels, *spatial); got shape {shape}"
            )
        self._check_mask_blob(bottom)

        self._meta = resolve_unpool_nd_param(
            self.param, len(shape) - 2, input_spatial_shape=shape[2:]
        )
        self._bottom_shape = shape

        out_shape = self.compute_output_shape()
        if any(d <= 0 for d in out_shape[2:]):
            raise UnpoolingShapeError(
                f"Non-positive unpooled size {out_shape[2:]} for input {shape[2:]}, "
                f"kernel={self._meta.kernel_shape}, stride={self._meta.stride_shape}, "
                f"pad={self._meta.pad_shape}"
            )

        top[0].reshape(*out_shape)
        self._prepare_operator(bottom, top, self._meta)
