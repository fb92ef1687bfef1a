"""
Configuration, shape and execution exceptions for KeyUnpool.

This module defines the error taxonomy used by the unpooling layers and
their CPU / CUDA backends. All checked errors are raised synchronously at
the point of detection and are never retried: misconfiguration is treated
as a programming error, not a transient condition.

Taxonomy
--------
- `UnpoolingConfigError`
    Contradictory or missing kernel/pad/stride settings (setup time).
- `UnpoolingShapeError`
    Inconsistent tensor shapes or blob counts (setup/reshape time).
- `MaskIndexError`
    A mask entry addresses a position outside its unpooled slice.
- `AcceleratorUnavailableError`
    The accelerated engine was requested explicitly but cannot be used.
- `NativeCallError`
    A native library export returned a non-zero status.
"""


class UnpoolingConfigError(ValueError):
    """
    Raised when an unpooling parameter record is malformed or contradictory.

    Examples include specifying both `kernel_size` and `kernel_h`/`kernel_w`,
    specifying neither, mixing `pad` with `pad_h`, a non-positive kernel, or
    padding that is not strictly smaller than the kernel.
    """


class UnpoolingShapeError(ValueError):
    """
    Raised when input/output tensors are inconsistent with the layer contract.

    This covers a wrong number of bottom/top blobs, a wrong number of axes,
    a mask whose shape differs from the feature map, and configurations that
    produce a non-positive unpooled extent.
    """


class MaskIndexError(IndexError):
    """
    Raised when a mask entry falls outside the unpooled slice it addresses.

    Attributes
    ----------
    value : int
        The offending mask value.
    limit : int
        The number of addressable positions per (batch, channel) slice.
    """

    def __init__(self, value: int, limit: int) -> None:
        super().__init__(
            f"Mask index {value} is out of range for an unpooled slice of "
            f"{limit} elements (expected 0 <= index < {limit})."
        )
        self.value = value
        self.limit = limit


class AcceleratorUnavailableError(RuntimeError):
    """
    Raised when `engine="cuda"` is requested but the CUDA native backend
    (library or device) cannot be used.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(f"Accelerated unpooling is unavailable: {reason}")
        self.reason = reason


class NativeCallError(RuntimeError):
    """
    Raised when a native export returns a non-zero status code.

    Attributes
    ----------
    symbol : str
        Name of the exported function that failed.
    status : int
        Status code returned by the native call.
    """

    def __init__(self, symbol: str, status: int) -> None:
        super().__init__(f"{symbol} failed with status={status}")
        self.symbol = symbol
        self.status = status
