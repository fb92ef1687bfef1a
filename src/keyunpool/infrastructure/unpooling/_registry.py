"""
Layer registry for model-description deserialization.

Layers are registered under their type name and rebuilt from layer
descriptions of the form

    {
      "type": "Unpooling",
      "name": "unpool1",
      "unpooling_param": {...}
    }
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Type

_LAYER_REGISTRY: dict[str, Type[Any]] = {}


def register_layer(name: Optional[str] = None) -> Callable[[Type[Any]], Type[Any]]:
    """
    Decorator to register a layer class under a type name.
    """

    def deco(cls: Type[Any]) -> Type[Any]:
        key = name or cls.__name__
        _LAYER_REGISTRY[key] = cls
        return cls

    return deco


def registered_layer_types() -> tuple[str, ...]:
    return tuple(sorted(_LAYER_REGISTRY))


def create_layer(layer_param: Dict[str, Any]) -> Any:
    """
    Build a layer from its model description.

    Raises
    ------
    ValueError
        If the type is missing or has not been registered.
    """
    if "type" not in layer_param:
        raise ValueError("Layer description has no 'type' field.")
    type_name = str(layer_param["type"])
    if type_name not in _LAYER_REGISTRY:
        raise ValueError(
            f"Unknown layer type '{type_name}'. Register it via @register_layer."
        )

    cls = _LAYER_REGISTRY[type_name]
    cfg = layer_param.get("unpooling_param", {}) or {}
    layer = cls.from_config(cfg)
    layer.name = str(layer_param.get("name", ""))
    return layer


def layer_to_config(layer: Any) -> Dict[str, Any]:
    """
    Convert a layer into its model description.
    """
    return {
        "type": layer.type,
        "name": getattr(layer, "name", ""),
        "unpooling_param": layer.get_config(),
    }
