"""
Entity service.

The facade callers use to query and mutate entities. Every operation
resolves the tenant's adapter through the registry; query operations
sanitize their parameters and apply scopes first, mutating operations
validate payloads and fire change notifications afterwards.

This module is part of ENTITY_ENGINE - Entity Engine.

Usage:
    service = EntityService(
        ServiceSettings(
            adapter={"type": "MongoDB", "options": {"db_name": "blog", "collection": "posts"}},
            default_scopes=["active"],
            scopes={"active": {"status": "active"}},
        )
    )
    async with service:
        posts = await service.find_entities(ctx, {"page": 2, "sort": "-created_at"})
"""

import asyncio
import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from ..adapters import Adapter
from ..config import ServiceSettings
from ..constants import PAGINATION_FIELDS, RAW_UPDATE_FLAG
from ..events import Broker
from ..exceptions import EntityNotFoundError, MissingIdFieldError
from ..observability import get_logger as get_contextual_logger
from ..observability import get_metrics_collector, tenant_logging_scope, timed_operation
from ..validation import PassthroughValidator, Validator
from .ids import IdCodec, sanitize_id
from .notifier import ChangeNotifier, EntityChangedHook
from .params import sanitize_params
from .registry import AdapterRegistry
from .scopes import apply_scopes
from .streaming import EntityStream, transform_stream
from .transform import identity_transform
from .types import ChangeEvent, Entity, QueryPlan, Scope, TenantResolver, TransformFunction

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class EntityService:
    """
    Storage-agnostic CRUD and query facade.

    Collaborators are injected at construction time:

    - ``validator``: checks and coerces write payloads (default: pass-through)
    - ``transform``: maps adapter results to the caller-facing shape (default: identity)
    - ``id_codec``: encodes/decodes secure ids (default: identity)
    - ``broker``: process-wide broker for cache invalidation broadcasts
    - ``tenant_resolver``: maps a call context to a tenant key (default: single tenant)
    - ``entity_changed``: hook called as ``(type, data, ctx)`` after each mutation
    """

    def __init__(
        self,
        settings: ServiceSettings | Mapping[str, Any] | None = None,
        *,
        validator: Validator | None = None,
        transform: TransformFunction | None = None,
        id_codec: IdCodec | None = None,
        broker: Broker | None = None,
        tenant_resolver: TenantResolver | None = None,
        entity_changed: EntityChangedHook | None = None,
    ) -> None:
        self.settings = ServiceSettings.load(settings)
        self.primary_field = self.settings.primary_field.to_primary_field()
        self.scopes: dict[str, Scope] = dict(self.settings.scopes)
        self.default_scopes: list[str] = list(self.settings.default_scopes)
        self.soft_delete = self.settings.soft_delete

        self.validator: Validator = validator or PassthroughValidator()
        self.transform: TransformFunction = transform or identity_transform
        self.id_codec = id_codec or IdCodec()
        self.broker = broker

        self.notifier = ChangeNotifier(
            cache_event_name=self.settings.cache.active_event_name,
            broker=broker,
            on_entity_changed=entity_changed,
        )
        self._single_tenant = tenant_resolver is None
        self.registry = AdapterRegistry(
            self.settings.adapter,
            auto_reconnect=self.settings.auto_reconnect,
            reconnect_delay=self.settings.reconnect_delay,
            tenant_resolver=tenant_resolver,
            on_adapter_created=lambda adapter: adapter.init(self),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Start the service.

        In single-tenant mode the default adapter is connected eagerly;
        multi-tenant adapters connect on first use.
        """
        if self._single_tenant:
            await self.get_adapter(None)
        contextual_logger.info("Entity service started")

    async def stop(self) -> None:
        """Disconnect every adapter. Safe to call more than once."""
        await self.disconnect_all()
        contextual_logger.info("Entity service stopped")

    async def __aenter__(self) -> "EntityService":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        await self.stop()

    async def get_adapter(self, ctx: Any = None) -> Adapter:
        """Get the connected adapter for the call's tenant."""
        return await self.registry.get_adapter(ctx)

    async def disconnect_all(self) -> None:
        """
        Disconnect every adapter and empty the registry.

        Raises:
            DisconnectError: If one or more adapters failed to disconnect
        """
        await self.registry.disconnect_all()

    def register_scope(self, name: str, scope: Scope) -> None:
        """Register (or replace) a named scope."""
        self.scopes[name] = scope

    def get_metrics(self) -> dict[str, Any]:
        """Operation metrics recorded for entity operations."""
        return get_metrics_collector().get_metrics()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _sanitize(self, params: Mapping[str, Any] | None, **opts: Any) -> QueryPlan:
        return sanitize_params(
            params,
            default_page_size=self.settings.default_page_size,
            max_limit=self.settings.max_limit,
            **opts,
        )

    def _apply_scopes(self, plan: Mapping[str, Any], ctx: Any) -> QueryPlan:
        return apply_scopes(plan, ctx, scopes=self.scopes, default_scopes=self.default_scopes)

    def _get_id(self, params: Mapping[str, Any]) -> Any:
        id = params.get(self.primary_field.name)
        if id is None:
            raise MissingIdFieldError(params=dict(params), field_name=self.primary_field.name)
        return id

    def _strip_primary(self, payload: dict[str, Any]) -> dict[str, Any]:
        payload.pop(self.primary_field.column_name, None)
        if self.primary_field.column_name != self.primary_field.name:
            payload.pop(self.primary_field.name, None)
        return payload

    async def _transform(self, adapter: Adapter, result: Any, params: Mapping[str, Any], ctx: Any) -> Any:
        return await self.transform(adapter, result, dict(params), ctx)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @timed_operation("entities.find")
    @tenant_logging_scope
    async def find_entities(
        self, ctx: Any, params: Mapping[str, Any] | None = None, *, transform: bool = True
    ) -> Any:
        """
        Find entities by query with pagination.

        ``page``/``page_size`` drive ``limit``/``offset``; ``page_size``
        defaults to the configured page size and is clamped to ``max_limit``.
        """
        plan = self._apply_scopes(self._sanitize(params, list_mode=True), ctx)
        adapter = await self.get_adapter(ctx)

        result = await adapter.find(plan)
        logger.debug(f"find_entities returned {len(result)} entities")
        if transform:
            result = await self._transform(adapter, result, plan, ctx)
        return result

    @timed_operation("entities.list")
    @tenant_logging_scope
    async def list_entities(
        self, ctx: Any, params: Mapping[str, Any] | None = None, *, transform: bool = True
    ) -> dict[str, Any]:
        """
        Find one page of entities along with paging totals.

        Returns:
            ``{"rows", "total", "page", "page_size", "total_pages"}``
        """
        plan = self._apply_scopes(self._sanitize(params, list_mode=True), ctx)
        count_plan = {k: v for k, v in plan.items() if k not in PAGINATION_FIELDS}
        adapter = await self.get_adapter(ctx)

        rows, total = await asyncio.gather(adapter.find(plan), adapter.count(count_plan))
        if transform:
            rows = await self._transform(adapter, rows, plan, ctx)

        page_size = plan["page_size"]
        return {
            "rows": rows,
            "total": total,
            "page": plan["page"],
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size) if page_size else 0,
        }

    @timed_operation("entities.stream")
    @tenant_logging_scope
    async def stream_entities(
        self, ctx: Any, params: Mapping[str, Any] | None = None, *, transform: bool = True
    ) -> EntityStream:
        """
        Stream entities by query.

        Returns an ``EntityStream``; items are pulled from the adapter one at a
        time as the consumer iterates. The adapter cursor is closed once the
        stream is exhausted or fails. A stream that may not be consumed to the
        end must be closed with ``aclose()`` or used as an async context
        manager, otherwise the cursor stays open.

        Usage:
            async with await service.stream_entities(ctx, {"query": {"status": "active"}}) as stream:
                async for entity in stream:
                    ...
        """
        plan = self._apply_scopes(self._sanitize(params, list_mode=True), ctx)
        adapter = await self.get_adapter(ctx)
        source = adapter.find_stream(plan)

        item_transform = None
        if transform:

            async def item_transform(doc: Entity) -> Any:
                return await self._transform(adapter, doc, plan, ctx)

        return transform_stream(source, item_transform)

    @timed_operation("entities.count")
    @tenant_logging_scope
    async def count_entities(self, ctx: Any, params: Mapping[str, Any] | None = None) -> int:
        """Count entities matching the query. Pagination parameters are ignored."""
        plan = self._apply_scopes(self._sanitize(params, remove_limit=True), ctx)
        adapter = await self.get_adapter(ctx)
        return await adapter.count(plan)

    @timed_operation("entities.find_one")
    @tenant_logging_scope
    async def find_entity(
        self, ctx: Any, params: Mapping[str, Any] | None = None, *, transform: bool = True
    ) -> Any:
        """Find the first entity matching the query, or None."""
        plan = self._apply_scopes(self._sanitize(params, remove_limit=True), ctx)
        plan["limit"] = 1

        adapter = await self.get_adapter(ctx)
        result = await adapter.find_one(plan.get("query") or {})
        if transform:
            result = await self._transform(adapter, result, plan, ctx)
        return result

    @timed_operation("entities.resolve")
    @tenant_logging_scope
    async def resolve_entities(
        self,
        ctx: Any,
        params: Mapping[str, Any],
        *,
        transform: bool = True,
        throw_if_not_exist: bool = False,
        secure_id: bool | None = None,
    ) -> Any:
        """
        Resolve entities by id.

        ``params[primary_field.name]`` holds a single id or a list of ids.

        Returns:
            - with ``mapping: True``: a dict of id to entity, keyed by the
              stored id in the form callers use (re-encoded when the
              primary field is secure)
            - for a single id: the entity, or None when it does not exist
            - for a list of ids: the list of found entities

        Raises:
            MissingIdFieldError: If no id was given
            EntityNotFoundError: If nothing matched and ``throw_if_not_exist`` is set
        """
        id = self._get_id(params)
        original_id = id
        multi = isinstance(id, (list, tuple))
        ids = [sanitize_id(i, self.id_codec, self.primary_field, secure_id) for i in (id if multi else [id])]

        plan = self._apply_scopes(params, ctx)
        query = dict(plan.get("query") or {})
        id_column = self.primary_field.column_name
        query[id_column] = {"$in": ids} if multi else ids[0]
        plan["query"] = query

        adapter = await self.get_adapter(ctx)
        result = await adapter.find(plan)
        if not result and throw_if_not_exist:
            raise EntityNotFoundError(original_id)

        # Transforms may rename or drop the id column, so mapping keys come from here
        untransformed = list(result)

        if transform:
            result = await self._transform(adapter, result, plan, ctx)

        if plan.get("mapping") is True:
            mapping: dict[Any, Any] = {}
            for raw, doc in zip(untransformed, result):
                key = adapter.to_public_id(raw[id_column])
                if self.primary_field.secure:
                    key = self.id_codec.encode_id(key)
                mapping[key] = doc
            return mapping
        if not multi:
            return result[0] if result else None
        return result

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @timed_operation("entities.create")
    @tenant_logging_scope
    async def create_entity(self, ctx: Any, params: Mapping[str, Any], *, transform: bool = True) -> Any:
        """
        Validate and insert one entity.

        Raises:
            ValidationFailedError: If the payload is rejected (nothing is inserted)
        """
        payload = await self.validator.validate(ctx, dict(params), type="create")

        adapter = await self.get_adapter(ctx)
        result = await adapter.insert(payload)
        if transform:
            result = await self._transform(adapter, result, {}, ctx)

        await self.notifier.notify(ChangeEvent("create", result), ctx)
        return result

    @timed_operation("entities.create_many")
    @tenant_logging_scope
    async def create_entities(
        self, ctx: Any, params: Sequence[Mapping[str, Any]], *, transform: bool = True
    ) -> Any:
        """Validate every payload concurrently, then insert them in one batch."""
        entities = await asyncio.gather(
            *(self.validator.validate(ctx, dict(entity), type="create") for entity in params)
        )

        adapter = await self.get_adapter(ctx)
        result = await adapter.insert_many(list(entities))
        if transform:
            result = await self._transform(adapter, result, {}, ctx)

        await self.notifier.notify(ChangeEvent("create", result, batch=True), ctx)
        return result

    @timed_operation("entities.update")
    @tenant_logging_scope
    async def update_entity(
        self,
        ctx: Any,
        params: Mapping[str, Any],
        *,
        transform: bool = True,
        secure_id: bool | None = None,
    ) -> Any:
        """
        Patch an entity.

        The entity must exist before anything is validated. A payload with
        ``"$raw": True`` skips validation and is handed to the adapter as a
        native update document (e.g. ``{"$inc": {"votes": 1}}``). Primary
        field values are always removed from the changes.

        Raises:
            MissingIdFieldError: If no id was given
            EntityNotFoundError: If the entity does not exist
            ValidationFailedError: If the changes are rejected
        """
        id = self._get_id(params)
        old_entity = await self.resolve_entities(
            ctx, params, transform=False, throw_if_not_exist=True, secure_id=secure_id
        )

        payload = dict(params)
        raw_update = payload.get(RAW_UPDATE_FLAG) is True
        if raw_update:
            del payload[RAW_UPDATE_FLAG]
        else:
            payload = await self.validator.validate(ctx, payload, type="update", old_entity=old_entity)

        id = sanitize_id(id, self.id_codec, self.primary_field, secure_id)
        payload = self._strip_primary(dict(payload))

        adapter = await self.get_adapter(ctx)
        result = await adapter.update_by_id(id, payload, raw=raw_update)
        if transform:
            result = await self._transform(adapter, result, {}, ctx)

        await self.notifier.notify(ChangeEvent("update", result), ctx)
        return result

    @timed_operation("entities.replace")
    @tenant_logging_scope
    async def replace_entity(
        self,
        ctx: Any,
        params: Mapping[str, Any],
        *,
        transform: bool = True,
        secure_id: bool | None = None,
    ) -> Any:
        """
        Replace an entity as a whole.

        Raises:
            MissingIdFieldError: If no id was given
            EntityNotFoundError: If the entity does not exist
            ValidationFailedError: If the new entity is rejected
        """
        id = self._get_id(params)
        old_entity = await self.resolve_entities(
            ctx, params, transform=False, throw_if_not_exist=True, secure_id=secure_id
        )
        adapter = await self.get_adapter(ctx)

        payload = await self.validator.validate(ctx, dict(params), type="replace", old_entity=old_entity)

        id = sanitize_id(id, self.id_codec, self.primary_field, secure_id)
        payload = self._strip_primary(dict(payload))

        result = await adapter.replace_by_id(id, payload)
        if transform:
            result = await self._transform(adapter, result, {}, ctx)

        await self.notifier.notify(ChangeEvent("replace", result), ctx)
        return result

    @timed_operation("entities.remove")
    @tenant_logging_scope
    async def remove_entity(
        self,
        ctx: Any,
        params: Mapping[str, Any],
        *,
        transform: bool = True,
        secure_id: bool | None = None,
    ) -> Any:
        """
        Remove an entity.

        With soft delete enabled the validated ``remove`` payload (typically
        a deletion timestamp) is applied as an update; otherwise the entity
        is deleted.

        Returns:
            The id exactly as the caller passed it

        Raises:
            MissingIdFieldError: If no id was given
            EntityNotFoundError: If the entity does not exist
        """
        id = self._get_id(params)
        original_id = id

        entity = await self.resolve_entities(
            ctx, params, transform=False, throw_if_not_exist=True, secure_id=secure_id
        )
        adapter = await self.get_adapter(ctx)

        payload = await self.validator.validate(ctx, dict(params), type="remove")

        id = sanitize_id(id, self.id_codec, self.primary_field, secure_id)

        if self.soft_delete:
            await adapter.update_by_id(id, self._strip_primary(dict(payload)))
        else:
            await adapter.remove_by_id(id)

        if transform:
            entity = await self._transform(adapter, entity, payload, ctx)

        await self.notifier.notify(ChangeEvent("remove", entity, soft_delete=self.soft_delete), ctx)
        return original_id

    @timed_operation("entities.clear")
    @tenant_logging_scope
    async def clear_entities(self, ctx: Any, params: Mapping[str, Any] | None = None) -> Any:
        """Delete every entity. No transform, no change notification."""
        adapter = await self.get_adapter(ctx)
        result = await adapter.clear(dict(params) if params is not None else None)
        contextual_logger.info("Entities cleared", extra={"result": result})
        return result

    async def create_index(self, adapter: Adapter, definition: Mapping[str, Any]) -> Any:
        """Create an index through ``adapter``."""
        return await adapter.create_index(dict(definition))
