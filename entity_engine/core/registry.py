"""
Adapter registry.

Maps tenant keys to live, connected adapters and owns their connection
lifecycle.

This module is part of ENTITY_ENGINE - Entity Engine.

Core Features:
- One adapter per tenant key. The entry (with its connection task) is
  published under a lock before the connection completes, so concurrent
  first lookups for a tenant await the same connection.
- Resilient connections: with auto-reconnect enabled a failed ``connect``
  is retried after a fixed delay until it succeeds.
- ``disconnect_all`` drains every entry and reports failures once all
  disconnects settled.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from ..adapters import Adapter, resolve_adapter
from ..constants import DEFAULT_RECONNECT_DELAY, DEFAULT_TENANT_KEY
from ..exceptions import ConnectionFailedError, DisconnectError
from ..observability import get_logger as get_contextual_logger
from ..observability import record_operation, set_tenant_context
from .types import RegistryEntry, TenantResolver

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


def default_tenant_resolver(ctx: Any, adapter_config: Any) -> tuple[str, Any]:
    """Single-tenant resolver: every call shares the ``default`` adapter."""
    return DEFAULT_TENANT_KEY, adapter_config


def context_tenant_resolver(ctx: Any, adapter_config: Any) -> tuple[str, Any]:
    """
    Resolver keyed by ``ctx.tenant``.

    Calls without a tenant share the default adapter. When ``adapter_config``
    is a callable it is called with the tenant key to build that tenant's
    configuration (e.g. a per-tenant database name).
    """
    tenant = getattr(ctx, "tenant", None) or DEFAULT_TENANT_KEY
    if callable(adapter_config):
        return tenant, adapter_config(tenant)
    return tenant, adapter_config


class AdapterRegistry:
    """
    Owns one connected adapter per tenant key.

    Example:
        registry = AdapterRegistry({"type": "MongoDB", "options": {...}})
        adapter = await registry.get_adapter(ctx)
        ...
        await registry.disconnect_all()
    """

    def __init__(
        self,
        adapter_config: Any = None,
        *,
        auto_reconnect: bool = True,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        tenant_resolver: TenantResolver | None = None,
        on_adapter_created: Callable[[Adapter], None] | None = None,
    ) -> None:
        """
        Args:
            adapter_config: Adapter configuration handed to the tenant resolver
            auto_reconnect: Retry failed connections forever
            reconnect_delay: Seconds between connection attempts
            tenant_resolver: ``(ctx, adapter_config) -> (tenant_key, adapter_config)``
            on_adapter_created: Called with each new adapter before it connects
        """
        self.adapter_config = adapter_config
        self.auto_reconnect = auto_reconnect
        self.reconnect_delay = reconnect_delay
        self.tenant_resolver = tenant_resolver or default_tenant_resolver
        self.on_adapter_created = on_adapter_created

        self._entries: dict[str, RegistryEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def tenant_keys(self) -> list[str]:
        """Tenant keys that currently have an adapter."""
        return list(self._entries)

    async def get_adapter(self, ctx: Any = None) -> Adapter:
        """
        Get or create the connected adapter for the call's tenant.

        Returns only once the adapter is connected. With auto-reconnect
        enabled this may wait indefinitely.

        Sets the tenant logging context for the rest of the calling task;
        service operations restore it when they return.

        Raises:
            ConnectionFailedError: If connecting failed and auto-reconnect is off
        """
        tenant_key, adapter_config = self.tenant_resolver(ctx, self.adapter_config)
        set_tenant_context(tenant_key=tenant_key)

        async with self._lock:
            entry = self._entries.get(tenant_key)
            if entry is None:
                adapter = resolve_adapter(adapter_config)
                if self.on_adapter_created is not None:
                    self.on_adapter_created(adapter)
                ready = asyncio.ensure_future(self._connect(tenant_key, adapter))
                entry = RegistryEntry(tenant_key=tenant_key, adapter=adapter, ready=ready)
                self._entries[tenant_key] = entry
                contextual_logger.info(
                    "Adapter created", extra={"tenant_key": tenant_key, "adapter": type(adapter).__name__}
                )

        try:
            await asyncio.shield(entry.ready)
        except ConnectionFailedError:
            async with self._lock:
                if self._entries.get(tenant_key) is entry:
                    del self._entries[tenant_key]
            raise
        return entry.adapter

    async def _connect(self, tenant_key: str, adapter: Adapter) -> None:
        attempt = 0
        while True:
            attempt += 1
            start_time = time.time()
            try:
                await adapter.connect()
            except Exception as e:
                record_operation(
                    "registry.connect", (time.time() - start_time) * 1000, success=False
                )
                contextual_logger.error(
                    "Connection error!",
                    extra={
                        "tenant_key": tenant_key,
                        "attempt": attempt,
                        "error_type": type(e).__name__,
                        "error": str(e),
                    },
                    exc_info=True,
                )
                if not self.auto_reconnect:
                    raise ConnectionFailedError(
                        tenant_key, context={"error_type": type(e).__name__}
                    ) from e
                await asyncio.sleep(self.reconnect_delay)
                contextual_logger.warning(
                    "Reconnecting...", extra={"tenant_key": tenant_key, "attempt": attempt + 1}
                )
                continue

            record_operation("registry.connect", (time.time() - start_time) * 1000, success=True)
            contextual_logger.info(
                "Adapter connected", extra={"tenant_key": tenant_key, "attempts": attempt}
            )
            return

    async def disconnect_all(self) -> None:
        """
        Disconnect every adapter and empty the registry.

        Connections still in progress are cancelled and their adapters
        disconnected as well. Every adapter is disconnected even when others
        fail.

        Raises:
            DisconnectError: After all disconnects settled, if any failed
        """
        async with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()

        contextual_logger.info(f"Disconnect {len(entries)} adapters...")

        connected: list[RegistryEntry] = []
        pending: list[RegistryEntry] = []
        for entry in entries:
            if not entry.ready.done():
                entry.ready.cancel()
                pending.append(entry)
            elif not entry.ready.cancelled() and entry.ready.exception() is None:
                connected.append(entry)

        # Cancelled adapters may hold a half-open connection
        if pending:
            await asyncio.gather(*(entry.ready for entry in pending), return_exceptions=True)
            connected.extend(pending)

        results = await asyncio.gather(
            *(entry.adapter.disconnect() for entry in connected), return_exceptions=True
        )

        errors: dict[str, BaseException] = {}
        for entry, result in zip(connected, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Failed to disconnect adapter for tenant '{entry.tenant_key}': {result}",
                    exc_info=result,
                )
                errors[entry.tenant_key] = result

        if errors:
            raise DisconnectError(errors)
