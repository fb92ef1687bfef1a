"""
KeyUnpool: Caffe-style max-unpooling layers with a NumPy reference backend
and an optional CUDA/cuDNN backend.
"""

from .domain import (
    UnpoolingConfigError,
    UnpoolingShapeError,
    MaskIndexError,
    AcceleratorUnavailableError,
    NativeCallError,
)
from .infrastructure import Blob
from .infrastructure.unpooling import (
    UnpoolingParameter,
    NdUnpoolingParameter,
    UnpoolingLayer,
    NdUnpoolingLayer,
    ReferenceUnpooling,
    AcceleratedUnpooling,
    select_unpooling_operator,
    create_layer,
    layer_to_config,
)

__version__ = "1.0.0a0"

__all__ = [
    Blob.__name__,
    UnpoolingParameter.__name__,
    NdUnpoolingParameter.__name__,
    UnpoolingLayer.__name__,
    NdUnpoolingLayer.__name__,
    ReferenceUnpooling.__name__,
    AcceleratedUnpooling.__name__,
    select_unpooling_operator.__name__,
    create_layer.__name__,
    layer_to_config.__name__,
    UnpoolingConfigError.__name__,
    UnpoolingShapeError.__name__,
    MaskIndexError.__name__,
    AcceleratorUnavailableError.__name__,
    NativeCallError.__name__,
]
