"""
Domain-level contracts for KeyUnpool.

Exports the structural interfaces implemented by the infrastructure layer
and the exception taxonomy shared by every backend.
"""

from ._blob import IBlob
from ._layer import ILayer
from ._unpooling import IUnpoolingOperator, IUnpooling2D
from ._errors import (
    UnpoolingConfigError,
    UnpoolingShapeError,
    MaskIndexError,
    AcceleratorUnavailableError,
    NativeCallError,
)

__all__ = [
    IBlob.__name__,
    ILayer.__name__,
    IUnpoolingOperator.__name__,
    IUnpooling2D.__name__,
    UnpoolingConfigError.__name__,
    UnpoolingShapeError.__name__,
    MaskIndexError.__name__,
    AcceleratorUnavailableError.__name__,
    NativeCallError.__name__,
]
