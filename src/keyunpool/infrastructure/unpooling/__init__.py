from ._unpooling_param import (
    UnpoolingParameter,
    NdUnpoolingParameter,
    Unpool2dMeta,
    UnpoolNdMeta,
    resolve_unpool2d_param,
    resolve_unpool_nd_param,
)
from ._operator import ReferenceUnpooling, AcceleratedUnpooling, select_unpooling_operator
from ._registry import register_layer, create_layer, layer_to_config
from ._unpooling_layer import UnpoolingLayer
from ._nd_unpooling_layer import NdUnpoolingLayer

__all__ = [
    UnpoolingParameter.__name__,
    NdUnpoolingParameter.__name__,
    Unpool2dMeta.__name__,
    UnpoolNdMeta.__name__,
    resolve_unpool2d_param.__name__,
    resolve_unpool_nd_param.__name__,
    ReferenceUnpooling.__name__,
    AcceleratedUnpooling.__name__,
    select_unpooling_operator.__name__,
    register_layer.__name__,
    create_layer.__name__,
    layer_to_config.__name__,
    UnpoolingLayer.__name__,
    NdUnpoolingLayer.__name__,
]
