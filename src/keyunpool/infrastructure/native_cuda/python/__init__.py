from ._native_loader import load_keyunpool_cuda_native, resolve_cuda_native_path
from .unpool_nd_ctypes import CudaUnpoolLib, get_cuda_unpool_lib
from ._cudnn_resources import CudnnUnpoolResources

__all__ = [
    load_keyunpool_cuda_native.__name__,
    resolve_cuda_native_path.__name__,
    CudaUnpoolLib.__name__,
    get_cuda_unpool_lib.__name__,
    CudnnUnpoolResources.__name__,
]
