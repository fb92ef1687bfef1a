"""
Unpooling parameter records and resolvers.

This module holds the model-description form of the unpooling hyperparameters
and the functions that turn it into concrete, validated values.

Parameter records
-----------------
- `UnpoolingParameter`
    2D form. Each of kernel / pad / stride is given either as a scalar
    (`kernel_size`, `pad`, `stride`) or per axis (`kernel_h`/`kernel_w`,
    `pad_h`/`pad_w`, `stride_h`/`stride_w`), never both. Unset fields are
    `None`.
- `NdUnpoolingParameter`
    N-D form. Each of `kernel_shape` / `pad_shape` / `stride_shape` is a
    tuple that is empty, holds one value broadcast to every spatial axis, or
    holds one value per spatial axis. `global_pooling` makes the kernel span
    the full input extent.

Resolved metadata
-----------------
- `Unpool2dMeta`  : kernel_size, stride, padding as 2-tuples
- `UnpoolNdMeta`  : kernel_shape, stride_shape, pad_shape as N-tuples

Validation is fail-fast: every violation raises `UnpoolingConfigError`.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Sequence, Tuple

from ...domain._errors import UnpoolingConfigError


ENGINES = ("auto", "cpu", "cuda")
"""Accepted values for the `engine` field."""


def _check_engine(engine: str) -> None:
    if engine not in ENGINES:
        raise UnpoolingConfigError(
            f"Unknown engine {engine!r}; expected one of {', '.join(ENGINES)}"
        )


def _record_from_dict(cls, d: Dict[str, Any]):
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(d) - names)
    if unknown:
        raise UnpoolingConfigError(
            f"Unknown {cls.__name__} field(s): {', '.join(unknown)}"
        )
    return cls(**d)


@dataclass(frozen=True)
class Unpool2dMeta:
    """
    Immutable container for resolved 2D unpooling hyperparameters.

    Attributes
    ----------
    kernel_size : tuple[int, int]
        Window size (k_h, k_w), both strictly positive.
    stride : tuple[int, int]
        Stride (s_h, s_w).
    padding : tuple[int, int]
        Padding (p_h, p_w), each strictly smaller than the matching kernel
        extent when nonzero.
    """

    kernel_size: Tuple[int, int]
    stride: Tuple[int, int]
    padding: Tuple[int, int]

    def as_nd(self) -> "UnpoolNdMeta":
        """Return the same configuration as a 2-axis `UnpoolNdMeta`."""
        return UnpoolNdMeta(
            kernel_shape=tuple(self.kernel_size),
            stride_shape=tuple(self.stride),
            pad_shape=tuple(self.padding),
        )


@dataclass(frozen=True)
class UnpoolNdMeta:
    """
    Immutable container for resolved N-D unpooling hyperparameters.
    """

    kernel_shape: Tuple[int, ...]
    stride_shape: Tuple[int, ...]
    pad_shape: Tuple[int, ...]

    @property
    def num_spatial_axes(self) -> int:
        return len(self.kernel_shape)


@dataclass(frozen=True)
class UnpoolingParameter:
    """
    2D unpooling parameter record (model-description form).

    Attributes
    ----------
    kernel_size, kernel_h, kernel_w : int or None
        Window size, either as a scalar or per axis.
    pad, pad_h, pad_w : int or None
        Padding, either as a scalar or per axis. Defaults to 0.
    stride, stride_h, stride_w : int or None
        Stride, either as a scalar or per axis. Defaults to 1.
    engine : str
        "auto", "cpu" or "cuda". "auto" follows `KEYUNPOOL_ENGINE` when set.
    check_mask : bool
        Validate mask entries in the CPU kernels.
    """

    kernel_size: Optional[int] = None
    kernel_h: Optional[int] = None
    kernel_w: Optional[int] = None
    pad: Optional[int] = None
    pad_h: Optional[int] = None
    pad_w: Optional[int] = None
    stride: Optional[int] = None
    stride_h: Optional[int] = None
    stride_w: Optional[int] = None
    engine: str = "auto"
    check_mask: bool = True

    def __post_init__(self) -> None:
        _check_engine(self.engine)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "UnpoolingParameter":
        """
        Build a record from a plain dict; unknown keys are rejected.
        """
        return _record_from_dict(cls, d)

    def to_dict(self) -> Dict[str, Any]:
        """
        Return the fields that are set, as plain Python values.
        """
        out: Dict[str, Any] = {}
        for f in fields(self):
            v = getattr(self, f.name)
            if v is not None:
                out[f.name] = v
        return out


@dataclass(frozen=True)
class NdUnpoolingParameter:
    """
    N-D unpooling parameter record (model-description form).

    Attributes
    ----------
    kernel_shape, pad_shape, stride_shape : tuple[int, ...]
        Empty, a single broadcast value, or one value per spatial axis.
    global_pooling : bool
        Kernel spans the entire input extent on every spatial axis.
    engine : str
        "auto", "cpu" or "cuda".
    check_mask : bool
        Validate mask entries in the CPU kernels.
    """

    kernel_shape: Tuple[int, ...] = ()
    pad_shape: Tuple[int, ...] = ()
    stride_shape: Tuple[int, ...] = ()
    global_pooling: bool = False
    engine: str = "auto"
    check_mask: bool = True

    def __post_init__(self) -> None:
        _check_engine(self.engine)
        # Lists from JSON configs are frozen into tuples.
        for name in ("kernel_shape", "pad_shape", "stride_shape"):
            v = getattr(self, name)
            if isinstance(v, int):
                v = (v,)
            object.__setattr__(self, name, tuple(int(i) for i in v))

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "NdUnpoolingParameter":
        """
        Build a record from a plain dict; unknown keys are rejected.
        """
        return _record_from_dict(cls, d)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kernel_shape": list(self.kernel_shape),
            "pad_shape": list(self.pad_shape),
            "stride_shape": list(self.stride_shape),
            "global_pooling": bool(self.global_pooling),
            "engine": self.engine,
            "check_mask": bool(self.check_mask),
        }


def resolve_unpool2d_param(param: UnpoolingParameter) -> Unpool2dMeta:
    """
    Validate a 2D parameter record and resolve concrete hyperparameters.

    Rules
    -----
    - Exactly one of `kernel_size` or both `kernel_h` and `kernel_w`.
    - `pad` OR both `pad_h` and `pad_w` (or none of them).
    - `stride` OR both `stride_h` and `stride_w` (or none of them).
    - Both kernel extents strictly positive.
    - If either pad is nonzero, each pad is strictly below its kernel extent.

    Raises
    ------
    UnpoolingConfigError
        On any rule violation.
    """
    has_kernel = param.kernel_size is not None
    has_kernel_hw = param.kernel_h is not None and param.kernel_w is not None
    if has_kernel and (param.kernel_h is not None or param.kernel_w is not None):
        raise UnpoolingConfigError(
            "Filter size is kernel_size OR kernel_h and kernel_w; not both"
        )
    if not has_kernel and not has_kernel_hw:
        raise UnpoolingConfigError(
            "For non-square filters both kernel_h and kernel_w are required."
        )

    has_pad_hw = param.pad_h is not None or param.pad_w is not None
    if has_pad_hw and (
        param.pad is not None or param.pad_h is None or param.pad_w is None
    ):
        raise UnpoolingConfigError("pad is pad OR pad_h and pad_w are required.")

    has_stride_hw = param.stride_h is not None or param.stride_w is not None
    if has_stride_hw and (
        param.stride is not None or param.stride_h is None or param.stride_w is None
    ):
        raise UnpoolingConfigError(
            "Stride is stride OR stride_h and stride_w are required."
        )

    if has_kernel:
        k_h = k_w = int(param.kernel_size)
    else:
        k_h, k_w = int(param.kernel_h), int(param.kernel_w)
    if k_h <= 0 or k_w <= 0:
        raise UnpoolingConfigError("Filter dimensions cannot be zero.")

    if has_pad_hw:
        p_h, p_w = int(param.pad_h), int(param.pad_w)
    else:
        p_h = p_w = int(param.pad or 0)
    if p_h < 0 or p_w < 0:
        raise UnpoolingConfigError(f"Padding must be non-negative; got ({p_h}, {p_w})")

    if has_stride_hw:
        s_h, s_w = int(param.stride_h), int(param.stride_w)
    else:
        s_h = s_w = int(1 if param.stride is None else param.stride)
    if s_h <= 0 or s_w <= 0:
        raise UnpoolingConfigError(f"Stride must be positive; got ({s_h}, {s_w})")

    if p_h != 0 or p_w != 0:
        if p_h >= k_h or p_w >= k_w:
            raise UnpoolingConfigError(
                f"Padding ({p_h}, {p_w}) must be smaller than the kernel ({k_h}, {k_w})"
            )

    return Unpool2dMeta(kernel_size=(k_h, k_w), stride=(s_h, s_w), padding=(p_h, p_w))


def _expand(
    name: str, values: Sequence[int], num_axes: int, default: int
) -> Tuple[int, ...]:
    if len(values) == 0:
        return (default,) * num_axes
    if len(values) == 1:
        return (int(values[0]),) * num_axes
    if len(values) != num_axes:
        raise UnpoolingConfigError(
            f"{name} must specify 1 or {num_axes} values; got {len(values)}"
        )
    return tuple(int(v) for v in values)


def resolve_unpool_nd_param(
    param: NdUnpoolingParameter,
    num_spatial_axes: int,
    input_spatial_shape: Optional[Sequence[int]] = None,
) -> UnpoolNdMeta:
    """
    Validate an N-D parameter record and resolve per-axis hyperparameters.

    Parameters
    ----------
    param : NdUnpoolingParameter
        Parameter record.
    num_spatial_axes : int
        Number of spatial axes of the input (its ndim minus 2).
    input_spatial_shape : Sequence[int], optional
        Input spatial extent; required when `global_pooling` is set.

    Raises
    ------
    UnpoolingConfigError
        On any rule violation.
    """
    if num_spatial_axes < 1:
        raise UnpoolingConfigError(
            f"Unpooling needs at least one spatial axis; got {num_spatial_axes}"
        )

    if param.global_pooling:
        if param.kernel_shape:
            raise UnpoolingConfigError(
                "With global_pooling: true Filter size cannot be specified"
            )
        pad = _expand("pad_shape", param.pad_shape, num_spatial_axes, 0)
        stride = _expand("stride_shape", param.stride_shape, num_spatial_axes, 1)
        if any(p != 0 for p in pad) or any(s != 1 for s in stride):
            raise UnpoolingConfigError(
                "With global_pooling: true; only pad = 0 and stride = 1"
            )
        if input_spatial_shape is None:
            raise UnpoolingConfigError(
                "global_pooling needs the input spatial shape to resolve the kernel"
            )
        if len(input_spatial_shape) != num_spatial_axes:
            raise UnpoolingConfigError(
                f"Expected {num_spatial_axes} spatial extents; got {len(input_spatial_shape)}"
            )
        kernel = tuple(int(d) for d in input_spatial_shape)
    else:
        if not param.kernel_shape:
            raise UnpoolingConfigError("kernel_shape is required unless global_pooling")
        kernel = _expand("kernel_shape", param.kernel_shape, num_spatial_axes, 0)
        pad = _expand("pad_shape", param.pad_shape, num_spatial_axes, 0)
        stride = _expand("stride_shape", param.stride_shape, num_spatial_axes, 1)

    for axis, (k, p, s) in enumerate(zip(kernel, pad, stride)):
        if k <= 0:
            raise UnpoolingConfigError("Filter dimensions must be nonzero.")
        if s <= 0:
            raise UnpoolingConfigError(f"Stride must be positive on axis {axis}; got {s}")
        if p < 0:
            raise UnpoolingConfigError(f"Padding must be non-negative on axis {axis}; got {p}")
    if any(p != 0 for p in pad):
        for axis, (k, p) in enumerate(zip(kernel, pad)):
            if p >= k:
                raise UnpoolingConfigError(
                    f"Padding {p} must be smaller than the kernel {k} on axis {axis}"
                )

    return UnpoolNdMeta(kernel_shape=kernel, stride_shape=stride, pad_shape=pad)
