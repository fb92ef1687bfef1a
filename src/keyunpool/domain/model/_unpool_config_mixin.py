"""
Configuration mixins for unpooling layers.

This module defines `UnpoolConfigMixin`, a lightweight mixin that provides
JSON-serializable configuration hooks for unpooling layers.

Layers are reconstructed from the same plain-dict form accepted by their
parameter records, so a config produced by `get_config` can be fed straight
back into `from_config` or into the layer registry.

Design notes
------------
- Assumes the host class exposes a `param` attribute whose value has a
  `to_dict()` method and whose class has a `from_dict()` constructor.
- Assumes the host class defines `PARAM_CLS` (the parameter record type)
  and accepts the record as its first constructor argument.
- Uses plain Python types (lists, ints, bools, strings) for JSON
  compatibility.
"""

from typing import Any, Dict, Type, TypeVar


T = TypeVar("T", bound="UnpoolConfigMixin")


class UnpoolConfigMixin:
    """
    Mixin providing JSON serialization hooks for unpooling layers.
    """

    # ---------------------------------------------------------------------
    # JSON serialization
    # ---------------------------------------------------------------------
    def get_config(self) -> Dict[str, Any]:
        """
        Return JSON-serializable configuration for this unpooling layer.
        """
        return dict(self.param.to_dict())

    @classmethod
    def from_config(cls: Type[T], cfg: Dict[str, Any]) -> T:
        """
        Reconstruct the unpooling layer from a JSON configuration dict.
        """
        return cls(cls.PARAM_CLS.from_dict(cfg))
