from ._blob import Blob

__all__ = [Blob.__name__]
