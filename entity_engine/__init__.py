"""
ENTITY_ENGINE - Entity Engine

Storage-agnostic entity access with multi-tenant adapters, resilient
connections, scoped queries and change notifications.
"""

# Core
from .core import (AdapterRegistry, Context, EntityService, IdCodec,
                   PrimaryField, public_transform)
# Adapters
from .adapters import (Adapter, MemoryAdapter, MongoAdapter, register_adapter,
                       resolve_adapter)
# Configuration
from .config import CacheSettings, PrimaryFieldSettings, ServiceSettings
# Events
from .events import Broker, LocalBroker
# Errors
from .exceptions import (ConfigurationError, ConnectionFailedError,
                         DisconnectError, EntityEngineError,
                         EntityNotFoundError, MissingIdFieldError,
                         ValidationFailedError)
# Validation
from .validation import JsonSchemaValidator, PassthroughValidator, Validator

__version__ = "0.1.0"

__all__ = [
    # Core
    "EntityService",
    "AdapterRegistry",
    "Context",
    "IdCodec",
    "PrimaryField",
    "public_transform",
    # Adapters
    "Adapter",
    "MemoryAdapter",
    "MongoAdapter",
    "register_adapter",
    "resolve_adapter",
    # Configuration
    "ServiceSettings",
    "CacheSettings",
    "PrimaryFieldSettings",
    # Events
    "Broker",
    "LocalBroker",
    # Validation
    "Validator",
    "JsonSchemaValidator",
    "PassthroughValidator",
    # Errors
    "EntityEngineError",
    "MissingIdFieldError",
    "EntityNotFoundError",
    "ValidationFailedError",
    "ConnectionFailedError",
    "DisconnectError",
    "ConfigurationError",
]
