"""
Unit tests for AdapterRegistry.

Tests adapter reuse per tenant, concurrent first access, the reconnect
policy and disconnect_all error aggregation.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from entity_engine.adapters.memory import MemoryAdapter
from entity_engine.core.registry import (AdapterRegistry,
                                         context_tenant_resolver,
                                         default_tenant_resolver)
from entity_engine.core.types import Context
from entity_engine.exceptions import ConnectionFailedError, DisconnectError


class CountingAdapter(MemoryAdapter):
    """Memory adapter counting instances and connection attempts."""

    instances = 0

    def __init__(self, options=None):
        super().__init__(options)
        type(self).instances += 1
        self.connect_calls = 0
        self.failures = (options or {}).get("failures", 0)
        self.gate = (options or {}).get("gate")

    async def connect(self):
        self.connect_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.connect_calls <= self.failures:
            raise OSError("connection refused")
        await super().connect()


class HalfOpenAdapter(MemoryAdapter):
    """Memory adapter that opens a resource, then waits on a gate to finish connecting."""

    def __init__(self, options=None):
        super().__init__(options)
        self.gate = self.options["gate"]
        self.opened = False
        self.closed = False

    async def connect(self):
        self.opened = True
        await self.gate.wait()
        await super().connect()

    async def disconnect(self):
        self.closed = True
        await super().disconnect()


@pytest.fixture(autouse=True)
def reset_counter():
    CountingAdapter.instances = 0
    yield


def tenant_resolver(ctx, config):
    return context_tenant_resolver(ctx, config)


class TestAdapterReuse:
    """Test one adapter per tenant key."""

    @pytest.mark.asyncio
    async def test_same_key_same_adapter(self):
        """Repeated lookups return the identical instance."""
        registry = AdapterRegistry({"type": CountingAdapter})

        first = await registry.get_adapter(None)
        second = await registry.get_adapter(Context())

        assert first is second
        assert CountingAdapter.instances == 1
        assert first.connected is True
        assert registry.tenant_keys() == ["default"]

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_converge(self):
        """Concurrent first lookups share one adapter and one connection."""
        gate = asyncio.Event()
        registry = AdapterRegistry({"type": CountingAdapter, "options": {"gate": gate}})

        tasks = [asyncio.ensure_future(registry.get_adapter(None)) for _ in range(5)]
        await asyncio.sleep(0)
        assert not any(task.done() for task in tasks)

        gate.set()
        adapters = await asyncio.gather(*tasks)

        assert all(adapter is adapters[0] for adapter in adapters)
        assert CountingAdapter.instances == 1
        assert adapters[0].connect_calls == 1

    @pytest.mark.asyncio
    async def test_tenants_isolated(self):
        """Different tenant keys get different adapters."""
        registry = AdapterRegistry(
            lambda tenant: {"type": CountingAdapter, "options": {"tenant": tenant}},
            tenant_resolver=tenant_resolver,
        )

        a = await registry.get_adapter(Context(tenant="a"))
        b = await registry.get_adapter(Context(tenant="b"))
        a_again = await registry.get_adapter(Context(tenant="a"))

        assert a is a_again
        assert a is not b
        assert a.options["tenant"] == "a"
        assert b.options["tenant"] == "b"
        assert len(registry) == 2

    @pytest.mark.asyncio
    async def test_created_hook_called_before_connect(self):
        """on_adapter_created sees the adapter before it is connected."""
        seen = []
        registry = AdapterRegistry(
            {"type": CountingAdapter},
            on_adapter_created=lambda adapter: seen.append(adapter.connected),
        )

        await registry.get_adapter(None)

        assert seen == [False]

    def test_default_resolver(self):
        assert default_tenant_resolver(Context(tenant="x"), "cfg") == ("default", "cfg")


class TestReconnect:
    """Test the connection retry policy."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        """With auto-reconnect the caller waits until connect succeeds."""
        registry = AdapterRegistry(
            {"type": CountingAdapter, "options": {"failures": 3}}, reconnect_delay=1.0
        )

        with patch("entity_engine.core.registry.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            adapter = await registry.get_adapter(None)

        assert adapter.connect_calls == 4
        assert adapter.connected is True
        assert mock_sleep.await_count == 3
        mock_sleep.assert_awaited_with(1.0)

    @pytest.mark.asyncio
    async def test_reconnect_is_logged(self, caplog):
        """Each failure is logged as an error and each retry as a warning."""
        registry = AdapterRegistry(
            {"type": CountingAdapter, "options": {"failures": 1}}, reconnect_delay=0
        )

        with caplog.at_level("WARNING"):
            await registry.get_adapter(None)

        messages = [record.getMessage() for record in caplog.records]
        assert "Connection error!" in messages
        assert "Reconnecting..." in messages

    @pytest.mark.asyncio
    async def test_failure_without_auto_reconnect(self):
        """Without auto-reconnect the first failure reaches the caller."""
        registry = AdapterRegistry(
            {"type": CountingAdapter, "options": {"failures": 1}}, auto_reconnect=False
        )

        with pytest.raises(ConnectionFailedError) as exc_info:
            await registry.get_adapter(None)

        assert exc_info.value.tenant_key == "default"
        assert isinstance(exc_info.value.__cause__, OSError)
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_failed_entry_can_be_retried(self):
        """After a terminal failure a later lookup creates a new adapter."""
        registry = AdapterRegistry(
            {"type": CountingAdapter, "options": {"failures": 1}}, auto_reconnect=False
        )

        with pytest.raises(ConnectionFailedError):
            await registry.get_adapter(None)
        adapter = await registry.get_adapter(None)

        assert CountingAdapter.instances == 2
        assert adapter.connected is True

    @pytest.mark.asyncio
    async def test_concurrent_waiters_all_fail(self):
        """Every caller waiting on a failing connection gets the error."""
        gate = asyncio.Event()
        registry = AdapterRegistry(
            {"type": CountingAdapter, "options": {"failures": 1, "gate": gate}},
            auto_reconnect=False,
        )

        tasks = [asyncio.ensure_future(registry.get_adapter(None)) for _ in range(3)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(result, ConnectionFailedError) for result in results)
        assert CountingAdapter.instances == 1


class TestDisconnectAll:
    """Test draining the registry."""

    @pytest.mark.asyncio
    async def test_fresh_adapter_after_disconnect(self):
        """disconnect_all empties the registry; the next lookup creates a new adapter."""
        registry = AdapterRegistry({"type": CountingAdapter})
        first = await registry.get_adapter(None)

        await registry.disconnect_all()

        assert len(registry) == 0
        assert first.connected is False
        second = await registry.get_adapter(None)
        assert second is not first

    @pytest.mark.asyncio
    async def test_errors_collected(self):
        """A failing disconnect does not stop the others; errors are aggregated."""
        registry = AdapterRegistry(
            lambda tenant: {"type": CountingAdapter},
            tenant_resolver=tenant_resolver,
        )
        a = await registry.get_adapter(Context(tenant="a"))
        b = await registry.get_adapter(Context(tenant="b"))
        c = await registry.get_adapter(Context(tenant="c"))
        a.disconnect = AsyncMock(side_effect=RuntimeError("boom"))
        c.disconnect = AsyncMock(side_effect=OSError("gone"))

        with pytest.raises(DisconnectError) as exc_info:
            await registry.disconnect_all()

        assert set(exc_info.value.errors) == {"a", "c"}
        assert isinstance(exc_info.value.errors["a"], RuntimeError)
        assert b.connected is False
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_pending_connection_cancelled(self):
        """Connections still in progress are cancelled and their adapters disconnected."""
        gate = asyncio.Event()
        created = []
        registry = AdapterRegistry(
            {"type": HalfOpenAdapter, "options": {"gate": gate}},
            on_adapter_created=created.append,
        )

        waiter = asyncio.ensure_future(registry.get_adapter(None))
        while not (created and created[0].opened):
            await asyncio.sleep(0)
        await registry.disconnect_all()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert created[0].closed is True
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_pending_connection_not_started(self):
        """A connection cancelled before it started is still disconnected."""
        created = []
        registry = AdapterRegistry(
            {"type": HalfOpenAdapter, "options": {"gate": asyncio.Event()}},
            on_adapter_created=created.append,
        )

        waiter = asyncio.ensure_future(registry.get_adapter(None))
        while not created:
            await asyncio.sleep(0)
        await registry.disconnect_all()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert created[0].closed is True

    @pytest.mark.asyncio
    async def test_empty_registry(self):
        """Disconnecting an empty registry is a no-op."""
        await AdapterRegistry().disconnect_all()
