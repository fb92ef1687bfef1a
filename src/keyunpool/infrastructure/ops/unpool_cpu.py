"""
CPU reference implementations for max-unpooling (NumPy backend).

This module provides readable and correct NumPy implementations of the
unpooling forward (scatter) and backward (gather) kernels for tensors in
**(N, C, *spatial)** layout. These functions serve as:

- The numerical ground truth for unit tests
- The kernels behind `ReferenceUnpooling`
- The fallback used whenever the CUDA native backend is unavailable

Kernel semantics
----------------
For every (batch, channel) slice independently:

- forward:  y[mask[i]] = x[i]       (y zero-initialized, last write wins)
- backward: gx[i] = gy[mask[i]]     (gx zero-initialized)

where `i` runs over the flattened input plane in row-major order and each
mask entry is a flat index into the flattened *unpooled* plane of the same
slice.

Design notes
------------
- Slices are addressed with explicit offsets into flat views
  (`s * area : (s + 1) * area`) rather than advancing pointers.
- Masks produced by pooling layers are often stored in the feature-map
  dtype; float masks are truncated toward zero to integer indices.
- When `check_mask` is True, every mask entry is validated against the
  unpooled slice area and `MaskIndexError` is raised on violation.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import MaskIndexError, UnpoolingShapeError


def _pair(v: int | Tuple[int, int]) -> Tuple[int, int]:
    """
    Normalize an integer or pair into a 2-tuple.

    Parameters
    ----------
    v : int or tuple[int, int]
        Scalar or pair value.

    Returns
    -------
    tuple[int, int]
        Normalized (v, v) if scalar, otherwise the original tuple.
    """
    return tuple(v) if isinstance(v, (tuple, list)) else (v, v)


def unpooled_extent(size: int, kernel: int, stride: int, pad: int) -> int:
    """
    Return the unpooled extent of one spatial axis.

    This is the exact inverse of the pooling shape reduction:

        out = (size - 1) * stride + kernel - 2 * pad
    """
    return (int(size) - 1) * int(stride) + int(kernel) - 2 * int(pad)


def unpooled_hw(
    H: int, W: int, k: Tuple[int, int], s: Tuple[int, int], p: Tuple[int, int]
) -> Tuple[int, int]:
    """
    Compute output spatial dimensions for a 2D unpooling operation.

    Parameters
    ----------
    H, W : int
        Input (pooled) height and width.
    k : tuple[int, int]
        Kernel size (k_h, k_w).
    s : tuple[int, int]
        Stride (s_h, s_w).
    p : tuple[int, int]
        Padding (p_h, p_w).

    Returns
    -------
    tuple[int, int]
        Unpooled height and width (H_out, W_out).
    """
    k_h, k_w = k
    s_h, s_w = s
    p_h, p_w = p
    return unpooled_extent(H, k_h, s_h, p_h), unpooled_extent(W, k_w, s_w, p_w)


def unpooled_shape_nd(
    spatial: Sequence[int],
    kernel: Sequence[int],
    stride: Sequence[int],
    pad: Sequence[int],
) -> Tuple[int, ...]:
    """
    Compute the unpooled spatial shape for an arbitrary number of axes.
    """
    if not (len(spatial) == len(kernel) == len(stride) == len(pad)):
        raise UnpoolingShapeError(
            "spatial, kernel, stride and pad must have the same length; got "
            f"{len(spatial)}, {len(kernel)}, {len(stride)}, {len(pad)}"
        )
    return tuple(
        unpooled_extent(d, k, s, p) for d, k, s, p in zip(spatial, kernel, stride, pad)
    )


def _as_index_mask(mask: np.ndarray) -> np.ndarray:
    """Return `mask` as an int64 array, truncating float entries toward zero."""
    mask = np.asarray(mask)
    if mask.dtype == np.int64:
        return mask
    if np.issubdtype(mask.dtype, np.floating):
        return np.trunc(mask).astype(np.int64)
    return mask.astype(np.int64)


def _check_mask(idx: np.ndarray, limit: int) -> None:
    """Raise `MaskIndexError` for the first entry outside [0, limit)."""
    if idx.size == 0:
        return
    bad = (idx < 0) | (idx >= limit)
    if np.any(bad):
        value = int(idx[bad].reshape(-1)[0])
        raise MaskIndexError(value, int(limit))


def _validate_pair(small: np.ndarray, mask: np.ndarray, large: np.ndarray) -> None:
    if small.ndim < 2:
        raise UnpoolingShapeError(
            f"Expected an (N, C, *spatial) tensor; got shape {small.shape}"
        )
    if mask.shape != small.shape:
        raise UnpoolingShapeError(
            f"Mask shape {mask.shape} does not match input shape {small.shape}"
        )
    if large.ndim != small.ndim or large.shape[:2] != small.shape[:2]:
        raise UnpoolingShapeError(
            f"Unpooled shape {large.shape} is incompatible with input shape {small.shape}"
        )


def _require_c_contiguous(out: np.ndarray, name: str) -> None:
    if not out.flags["C_CONTIGUOUS"]:
        raise ValueError(f"{name} must be C-contiguous")


def unpool_forward_cpu(
    x: np.ndarray,
    mask: np.ndarray,
    y: np.ndarray,
    *,
    check_mask: bool = True,
) -> np.ndarray:
    """
    Unpooling forward pass (scatter), written in-place into `y`.

    Parameters
    ----------
    x : np.ndarray
        Input tensor of shape (N, C, *in_spatial).
    mask : np.ndarray
        Index mask of the same shape as `x`. Each entry is a flat index into
        the unpooled plane of its (n, c) slice.
    y : np.ndarray
        Pre-sized, C-contiguous output of shape (N, C, *out_spatial).
    check_mask : bool, optional
        Validate mask entries against the unpooled plane size.

    Returns
    -------
    np.ndarray
        `y`, for convenience.

    Notes
    -----
    - `y` is zero-filled first; positions never referenced stay zero.
    - Duplicate targets within a slice resolve to the last input position in
      row-major order.
    """
    _validate_pair(x, mask, y)
    _require_c_contiguous(y, "y")

    N, C = x.shape[0], x.shape[1]
    in_area = int(np.prod(x.shape[2:], dtype=np.int64))
    out_area = int(np.prod(y.shape[2:], dtype=np.int64))

    idx = _as_index_mask(mask).reshape(N * C, in_area)
    if check_mask:
        _check_mask(idx, out_area)

    x_flat = np.ascontiguousarray(x).reshape(-1)
    y_flat = y.reshape(-1)
    y_flat[...] = 0

    for n in range(N):
        for c in range(C):
            s = n * C + c
            src = x_flat[s * in_area : (s + 1) * in_area]
            dst = y_flat[s * out_area : (s + 1) * out_area]
            dst[idx[s]] = src

    return y


def unpool_backward_cpu(
    grad_out: np.ndarray,
    mask: np.ndarray,
    grad_x: np.ndarray,
    *,
    check_mask: bool = True,
) -> np.ndarray:
    """
    Unpooling backward pass (gather), written in-place into `grad_x`.

    Parameters
    ----------
    grad_out : np.ndarray
        Gradient with respect to the unpooled output, shape (N, C, *out_spatial).
    mask : np.ndarray
        Index mask used in the forward pass, shape (N, C, *in_spatial).
    grad_x : np.ndarray
        Pre-sized, C-contiguous gradient buffer of shape (N, C, *in_spatial).
    check_mask : bool, optional
        Validate mask entries against the unpooled plane size.

    Returns
    -------
    np.ndarray
        `grad_x`, for convenience.

    Notes
    -----
    Each input position receives the gradient of exactly the one output
    position it wrote to during forward.
    """
    _validate_pair(grad_x, mask, grad_out)
    _require_c_contiguous(grad_x, "grad_x")

    N, C = grad_x.shape[0], grad_x.shape[1]
    in_area = int(np.prod(grad_x.shape[2:], dtype=np.int64))
    out_area = int(np.prod(grad_out.shape[2:], dtype=np.int64))

    idx = _as_index_mask(mask).reshape(N * C, in_area)
    if check_mask:
        _check_mask(idx, out_area)

    go_flat = np.ascontiguousarray(grad_out).reshape(-1)
    gx_flat = grad_x.reshape(-1)
    gx_flat[...] = 0

    for n in range(N):
        for c in range(C):
            s = n * C + c
            src = go_flat[s * out_area : (s + 1) * out_area]
            gx_flat[s * in_area : (s + 1) * in_area] = src[idx[s]]

    return grad_x


def unpool2d_forward_cpu(
    x: np.ndarray,
    mask: np.ndarray,
    *,
    kernel_size: int | Tuple[int, int],
    stride: Optional[int | Tuple[int, int]] = None,
    padding: int | Tuple[int, int] = 0,
    check_mask: bool = True,
) -> np.ndarray:
    """
    MaxUnpool2D forward pass (CPU, NumPy) for NCHW tensors.

    Parameters
    ----------
    x : np.ndarray
        Input tensor of shape (N, C, H, W).
    mask : np.ndarray
        Index mask of shape (N, C, H, W).
    kernel_size : int or tuple[int, int]
        Window size of the paired pooling layer.
    stride : int or tuple[int, int] or None, optional
        Stride of the paired pooling layer. If None, defaults to `kernel_size`.
    padding : int or tuple[int, int], optional
        Padding of the paired pooling layer.
    check_mask : bool, optional
        Validate mask entries.

    Returns
    -------
    np.ndarray
        Output tensor of shape (N, C, H_out, W_out).
    """
    k = _pair(kernel_size)
    s = _pair(kernel_size if stride is None else stride)
    p = _pair(padding)

    if x.ndim != 4:
        raise UnpoolingShapeError(f"Expected an NCHW tensor; got shape {x.shape}")
    N, C, H, W = x.shape
    H_out, W_out = unpooled_hw(H, W, k, s, p)
    if H_out <= 0 or W_out <= 0:
        raise UnpoolingShapeError(
            f"Non-positive unpooled size ({H_out}, {W_out}) for input ({H}, {W}), "
            f"kernel={k}, stride={s}, padding={p}"
        )

    y = np.empty((N, C, H_out, W_out), dtype=x.dtype)
    return unpool_forward_cpu(x, mask, y, check_mask=check_mask)


def unpool2d_backward_cpu(
    grad_out: np.ndarray,
    mask: np.ndarray,
    *,
    x_shape: tuple[int, int, int, int],
    check_mask: bool = True,
) -> np.ndarray:
    """
    MaxUnpool2D backward pass (CPU, NumPy), NCHW.

    Parameters
    ----------
    grad_out : np.ndarray
        Gradient with respect to the output, shape (N, C, H_out, W_out).
    mask : np.ndarray
        Index mask used in the forward pass.
    x_shape : tuple[int, int, int, int]
        Original input shape (N, C, H, W).
    check_mask : bool, optional
        Validate mask entries.

    Returns
    -------
    np.ndarray
        Gradient with respect to the input, shape (N, C, H, W).
    """
    grad_x = np.empty(tuple(x_shape), dtype=grad_out.dtype)
    return unpool_backward_cpu(grad_out, mask, grad_x, check_mask=check_mask)
