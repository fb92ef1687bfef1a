"""
Cached loader for the KeyUnpool CUDA native library.

The CUDA backend is a small C-ABI shared library that wraps the CUDA runtime
and cuDNN (handle, tensor descriptors, pooling descriptors) and exports the
unpooling kernels. It is built out of tree and is optional: when it cannot
be located or loaded, the unpooling layers fall back to the NumPy reference
operator.

Resolution policy
-----------------
1) An explicit `lib_path` argument always wins.
2) Otherwise `KEYUNPOOL_CUDA_NATIVE` (absolute path) is used when set.
3) Otherwise the platform-specific file name is looked up next to this
   module.

Windows-specific considerations
-------------------------------
On Windows (Python 3.8+), dependent DLL discovery is restricted. The loader
registers `<CUDA_PATH>/bin`, `<CUDNN_PATH>/bin` and the library's own folder
via `os.add_dll_directory`, and keeps the registration handles alive for the
lifetime of the loaded library.
"""

from __future__ import annotations

import ctypes
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import Optional


def _default_lib_name() -> str:
    """
    Return the platform-specific filename of the CUDA native library.
    """
    if sys.platform.startswith("win"):
        return "KeyUnpoolCudaNative.dll"
    if sys.platform == "darwin":
        return "libkeyunpool_cuda_native.dylib"
    return "libkeyunpool_cuda_native.so"


def resolve_cuda_native_path(lib_path: Optional[str] = None) -> Path:
    """
    Resolve the path of the CUDA native library without loading it.
    """
    if lib_path is not None:
        return Path(lib_path).resolve()
    env = os.environ.get("KEYUNPOOL_CUDA_NATIVE", "").strip()
    if env:
        return Path(env).resolve()
    return (Path(__file__).resolve().parent / _default_lib_name()).resolve()


def _add_dll_dir(dir_path: str, handles: list) -> None:
    if not dir_path or not os.path.isdir(dir_path):
        return
    try:
        handles.append(os.add_dll_directory(dir_path))
    except OSError as e:
        # WinError 206: The filename or extension is too long
        if getattr(e, "winerror", None) != 206:
            raise
        cur = os.environ.get("PATH", "")
        if dir_path not in cur.split(os.pathsep):
            os.environ["PATH"] = dir_path + os.pathsep + cur if cur else dir_path


@lru_cache(maxsize=4)
def load_keyunpool_cuda_native(lib_path: Optional[str] = None) -> ctypes.CDLL:
    """
    Load and cache the KeyUnpool CUDA native library.

    Parameters
    ----------
    lib_path : Optional[str]
        Path to a specific library file. If None, the resolution policy of
        this module applies.

    Returns
    -------
    ctypes.CDLL
        Loaded library handle.

    Raises
    ------
    FileNotFoundError
        If the resolved library path does not exist.
    OSError
        If the library exists but cannot be loaded (missing CUDA/cuDNN
        runtime, wrong architecture, ...).
    """
    p = resolve_cuda_native_path(lib_path)
    if not p.exists():
        raise FileNotFoundError(f"KeyUnpool CUDA native library not found at: {p}")

    handles: list = []
    if sys.platform.startswith("win") and hasattr(os, "add_dll_directory"):
        for env_name in ("CUDA_PATH", "CUDNN_PATH"):
            root = os.environ.get(env_name, "")
            if root:
                _add_dll_dir(os.path.join(root, "bin"), handles)
        _add_dll_dir(str(p.parent), handles)

    try:
        lib = ctypes.CDLL(str(p))
    except OSError as e:
        raise OSError(f"Failed to load CUDA native library: {p}\nOriginal error: {e}") from e

    setattr(lib, "_keyunpool_dll_dir_handles", handles)
    return lib
