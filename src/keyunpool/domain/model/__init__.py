from ._unpool_config_mixin import UnpoolConfigMixin

__all__ = [UnpoolConfigMixin.__name__]
