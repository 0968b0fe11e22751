"""
Type definitions for ENTITY_ENGINE core structures.

This module provides the dataclasses and TypedDict definitions shared by
the registry, the sanitizer, the scope engine and the entity service.

This module is part of ENTITY_ENGINE - Entity Engine.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, TypedDict, Union

from ..constants import DEFAULT_PRIMARY_COLUMN_NAME, DEFAULT_PRIMARY_FIELD_NAME

if TYPE_CHECKING:
    from ..adapters.base import Adapter
    from ..events import Broker

Entity = dict[str, Any]
"""An entity as produced and consumed by adapters."""

ChangeType = Literal["create", "update", "replace", "remove"]

ScopeFunction = Callable[[dict[str, Any], Any], dict[str, Any]]
Scope = Union[Mapping[str, Any], ScopeFunction]

TransformFunction = Callable[[Any, Any, dict[str, Any], Any], Awaitable[Any]]
"""``transform(adapter, result, params, ctx)`` returning the caller-facing shape."""

TenantResolver = Callable[[Any, Any], tuple[str, Any]]
"""``resolver(ctx, adapter_config)`` returning ``(tenant_key, adapter_config)``."""


# ============================================================================
# Query plan
# ============================================================================


class QueryPlan(TypedDict, total=False):
    """Sanitized query parameters (one per call, never shared)."""

    query: dict[str, Any]
    sort: list[str]
    fields: list[str]
    populate: list[str]
    search_fields: list[str]
    search: str
    limit: int
    offset: int
    page: int
    page_size: int
    scope: Union[str, Sequence[str], bool]
    mapping: bool


# ============================================================================
# Primary field / context / events
# ============================================================================


@dataclass(frozen=True)
class PrimaryField:
    """
    Describes the logical id field of an entity.

    Attributes:
        name: Field name exposed to callers (e.g. ``id``)
        column_name: Storage-level column name (e.g. ``_id``)
        secure: Whether values are encoded/decoded at the caller boundary
    """

    name: str = DEFAULT_PRIMARY_FIELD_NAME
    column_name: str = DEFAULT_PRIMARY_COLUMN_NAME
    secure: bool = False


@dataclass
class Context:
    """
    Per-call context handed to every service operation.

    Attributes:
        tenant: Tenant identifier used by multi-tenant resolvers
        meta: Free-form metadata (user, request id, ...)
        broker: Call-scoped broker used for cache invalidation broadcasts
    """

    tenant: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    broker: "Broker | None" = None


@dataclass(frozen=True)
class ChangeEvent:
    """An entity mutation, passed to the change notifier only."""

    type: ChangeType
    data: Any
    batch: bool = False
    soft_delete: bool = False


@dataclass
class RegistryEntry:
    """
    A tenant's adapter plus its in-flight (or completed) connection.

    The entry is published before the connection completes so concurrent
    lookups for the same tenant await ``ready`` instead of creating a
    second adapter.
    """

    tenant_key: str
    adapter: "Adapter"
    ready: asyncio.Future
