"""
2D max-unpooling layer (NCHW).

`UnpoolingLayer` is the inverse of a max-pooling layer: it takes the pooled
feature map together with the pooling mask and scatters every value back to
the position it came from in a zero-initialized, larger map.

Blob contract
-------------
bottom[0] : (N, C, H, W)      pooled feature map
bottom[1] : (N, C, H, W)      mask, flat index into the (H_out * W_out) plane
top[0]    : (N, C, H_out, W_out)

where:
    H_out = (H - 1) * s_h + k_h - 2 * p_h
    W_out = (W - 1) * s_w + k_w - 2 * p_w

Design notes
------------
- Hyperparameters are resolved once, at construction, into `Unpool2dMeta`.
- The numeric work is delegated to an `IUnpoolingOperator` chosen at
  construction (`engine` field of the parameter record).
- The mask receives no gradient.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

from ...domain._blob import IBlob
from ...domain._errors import UnpoolingShapeError
from ...domain.model._unpool_config_mixin import UnpoolConfigMixin
from ..ops.unpool_cpu import unpooled_hw
from ._operator import select_unpooling_operator
from ._registry import register_layer
from ._unpooling_param import Unpool2dMeta, UnpoolingParameter, resolve_unpool2d_param


class _UnpoolingLayerBase(UnpoolConfigMixin):
    """
    Shared blob plumbing for the unpooling layers.

    Subclasses define `PARAM_CLS`, `type` and `reshape`.
    """

    PARAM_CLS: Any = None

    def __init__(self, param: Any, *, name: str = "", operator: Any = None) -> None:
        if isinstance(param, dict):
            param = self.PARAM_CLS.from_dict(param)
        self.param = param
        self.name = name
        self._meta: Any = None
        self._configure()
        self._operator = (
            operator
            if operator is not None
            else select_unpooling_operator(param.engine, check_mask=param.check_mask)
        )

    def _configure(self) -> None:
        """Resolve whatever can be resolved without seeing the input."""

    @property
    def operator(self):
        """The execution backend this layer delegates to."""
        return self._operator

    @property
    def exact_num_bottom_blobs(self) -> int:
        return 2

    @property
    def exact_num_top_blobs(self) -> int:
        return 1

    def _check_blob_counts(self, bottom: Sequence[IBlob], top: Sequence[IBlob]) -> None:
        if len(bottom) != self.exact_num_bottom_blobs:
            raise UnpoolingShapeError(
                f"{self.type} Layer takes {self.exact_num_bottom_blobs} bottom blob(s) "
                f"as input; got {len(bottom)}"
            )
        if len(top) != self.exact_num_top_blobs:
            raise UnpoolingShapeError(
                f"{self.type} Layer produces {self.exact_num_top_blobs} top blob(s) "
                f"as output; got {len(top)}"
            )

    @staticmethod
    def _check_mask_blob(bottom: Sequence[IBlob]) -> None:
        if tuple(bottom[1].shape) != tuple(bottom[0].shape):
            raise UnpoolingShapeError(
                f"Mask shape {tuple(bottom[1].shape)} does not match input shape "
                f"{tuple(bottom[0].shape)}"
            )

    def setup(self, bottom: Sequence[IBlob], top: Sequence[IBlob]) -> None:
        self._check_blob_counts(bottom, top)
        self.reshape(bottom, top)

    def reshape(self, bottom: Sequence[IBlob], top: Sequence[IBlob]) -> None:
        raise NotImplementedError

    def _prepare_operator(self, bottom: Sequence[IBlob], top: Sequence[IBlob], meta: Any) -> None:
        self._operator.prepare(
            tuple(bottom[0].shape),
            tuple(top[0].shape),
            meta,
            dtype=getattr(bottom[0], "dtype", None),
        )

    def forward(self, bottom: Sequence[IBlob], top: Sequence[IBlob]) -> None:
        """
        Scatter bottom[0] into top[0] at the positions recorded in bottom[1].
        """
        self._operator.forward(bottom[0].data, bottom[1].data, top[0].mutable_data)

    def backward(
        self,
        top: Sequence[IBlob],
        propagate_down: Sequence[bool],
        bottom: Sequence[IBlob],
    ) -> None:
        """
        Gather top[0].diff into bottom[0].diff through the mask.

        Nothing is touched when `propagate_down[0]` is False.
        """
        if not propagate_down[0]:
            return
        self._operator.backward(top[0].diff, bottom[1].data, bottom[0].mutable_diff)

    def close(self) -> None:
        """Release backend resources held by the operator (idempotent)."""
        self._operator.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, param={self.param!r}, operator={self._operator!r})"


@register_layer("Unpooling")
class UnpoolingLayer(_UnpoolingLayerBase):
    """
    2D max-unpooling layer.

    Parameters
    ----------
    param : UnpoolingParameter or dict
        Parameter record (or its dict form).
    name : str, optional
        Layer name in the model description.
    operator : IUnpoolingOperator, optional
        Explicit execution backend. If None, one is selected from
        `param.engine`.

    Raises
    ------
    UnpoolingConfigError
        If the parameter record violates any kernel/pad/stride rule.
    """

    PARAM_CLS = UnpoolingParameter

    def __init__(
        self,
        param: UnpoolingParameter | Dict[str, Any],
        *,
        name: str = "",
        operator: Any = None,
    ) -> None:
        self._unpooled_shape: Optional[Tuple[int, int]] = None
        super().__init__(param, name=name, operator=operator)

    def _configure(self) -> None:
        self._meta = resolve_unpool2d_param(self.param)

    @property
    def type(self) -> str:
        return "Unpooling"

    @property
    def meta(self) -> Unpool2dMeta:
        return self._meta

    @property
    def kernel_size(self) -> Tuple[int, int]:
        """
        Return the unpooling window size.

        Returns
        -------
        tuple[int, int]
            Kernel size as (k_h, k_w).
        """
        return self._meta.kernel_size

    @property
    def stride(self) -> Tuple[int, int]:
        """
        Return the unpooling stride.

        Returns
        -------
        tuple[int, int]
            Stride as (s_h, s_w).
        """
        return self._meta.stride

    @property
    def padding(self) -> Tuple[int, int]:
        """
        Return the unpooling padding.

        Returns
        -------
        tuple[int, int]
            Padding as (p_h, p_w).
        """
        return self._meta.padding

    @property
    def unpooled_shape(self) -> Optional[Tuple[int, int]]:
        """(H_out, W_out) computed by the last `reshape`, or None before it."""
        return self._unpooled_shape

    def reshape(self, bottom: Sequence[IBlob], top: Sequence[IBlob]) -> None:
        """
        Validate the bottom blobs and size top[0] to (N, C, H_out, W_out).

        Raises
        ------
        UnpoolingShapeError
            If bottom[0] is not 4-axis, the mask shape differs, or the
            unpooled extent is not positive.
        """
        self._check_blob_counts(bottom, top)
        if bottom[0].num_axes != 4:
            raise UnpoolingShapeError(
                "Input must have 4 axes, corresponding to (num, channels, height, width); "
                f"got shape {tuple(bottom[0].shape)}"
            )
        self._check_mask_blob(bottom)

        N, C, H, W = bottom[0].shape
        H_out, W_out = unpooled_hw(
            H, W, self._meta.kernel_size, self._meta.stride, self._meta.padding
        )
        if H_out <= 0 or W_out <= 0:
            raise UnpoolingShapeError(
                f"Non-positive unpooled size ({H_out}, {W_out}) for input ({H}, {W}), "
                f"kernel={self._meta.kernel_size}, stride={self._meta.stride}, "
                f"padding={self._meta.padding}"
            )

        self._unpooled_shape = (H_out, W_out)
        top[0].reshape(N, C, H_out, W_out)
        self._prepare_operator(bottom, top, self._meta)
