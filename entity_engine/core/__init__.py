"""
Core entity engine components.

This module contains the EntityService facade and the building blocks it
orchestrates: the adapter registry, parameter sanitizer, scope engine,
streaming pipeline, id security hooks and change notifier.
"""

from .types import (ChangeEvent, ChangeType, Context, Entity, PrimaryField,
                    QueryPlan, RegistryEntry)
from .ids import IdCodec, sanitize_id
from .params import parse_query, sanitize_params, split_fields
from .scopes import active_scopes, apply_scopes, defaults_deep
from .streaming import EntityStream, transform_stream
from .notifier import ChangeNotifier
from .transform import identity_transform, public_transform
from .registry import (AdapterRegistry, context_tenant_resolver,
                       default_tenant_resolver)
from .service import EntityService

__all__ = [
    # Service
    "EntityService",
    # Registry
    "AdapterRegistry",
    "default_tenant_resolver",
    "context_tenant_resolver",
    # Query plan
    "sanitize_params",
    "split_fields",
    "parse_query",
    "apply_scopes",
    "active_scopes",
    "defaults_deep",
    # Streaming / transforms
    "EntityStream",
    "transform_stream",
    "identity_transform",
    "public_transform",
    # Ids / notifications
    "IdCodec",
    "sanitize_id",
    "ChangeNotifier",
    # Types
    "ChangeEvent",
    "ChangeType",
    "Context",
    "Entity",
    "PrimaryField",
    "QueryPlan",
    "RegistryEntry",
]
