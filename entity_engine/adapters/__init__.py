"""
Storage adapters.

Provides the abstract Adapter interface, the bundled implementations and
``resolve_adapter`` which builds an adapter from configuration.

Usage:
    from entity_engine.adapters import resolve_adapter

    resolve_adapter(None)                       # MemoryAdapter
    resolve_adapter("MongoDB")                  # MongoAdapter (options required)
    resolve_adapter({"type": "MongoDB", "options": {"db_name": "blog", "collection": "posts"}})
    resolve_adapter(MyAdapter())                # instance is used as-is
"""

from collections.abc import Mapping
from typing import Any

from ..exceptions import ConfigurationError
from .base import Adapter
from .memory import MemoryAdapter
from .mongo import MongoAdapter

_ADAPTERS: dict[str, type[Adapter]] = {
    "memory": MemoryAdapter,
    "mongodb": MongoAdapter,
    "mongo": MongoAdapter,
}


def register_adapter(name: str, adapter_class: type[Adapter]) -> None:
    """Make ``adapter_class`` resolvable by ``name`` (case-insensitive)."""
    if not (isinstance(adapter_class, type) and issubclass(adapter_class, Adapter)):
        raise ConfigurationError(
            "Adapter classes must subclass Adapter", config_key="adapter", config_value=name
        )
    _ADAPTERS[name.lower()] = adapter_class


def _by_name(name: str) -> type[Adapter]:
    adapter_class = _ADAPTERS.get(name.lower())
    if adapter_class is None:
        raise ConfigurationError(
            f"Unknown adapter type '{name}'", config_key="adapter", config_value=name
        )
    return adapter_class


def resolve_adapter(config: Any = None) -> Adapter:
    """
    Build an adapter from its configuration.

    Args:
        config: None, an Adapter instance, a registered name, or
                ``{"type": name, "options": {...}}``

    Returns:
        A new (not yet connected) adapter, or ``config`` itself when it is
        already an Adapter

    Raises:
        ConfigurationError: If the configuration cannot be resolved
    """
    if config is None:
        return MemoryAdapter()
    if isinstance(config, Adapter):
        return config
    if isinstance(config, str):
        return _by_name(config)()
    if isinstance(config, Mapping):
        adapter_type = config.get("type")
        if not adapter_type:
            raise ConfigurationError("Adapter configuration requires 'type'", config_key="adapter")
        if isinstance(adapter_type, type) and issubclass(adapter_type, Adapter):
            return adapter_type(config.get("options"))
        return _by_name(str(adapter_type))(config.get("options"))
    raise ConfigurationError(
        "Invalid adapter configuration", config_key="adapter", config_value=repr(config)
    )


__all__ = [
    "Adapter",
    "MemoryAdapter",
    "MongoAdapter",
    "register_adapter",
    "resolve_adapter",
]
