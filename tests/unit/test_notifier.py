"""
Unit tests for ChangeNotifier and LocalBroker.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from entity_engine.constants import DEFAULT_BROKER_HISTORY
from entity_engine.core.notifier import ChangeNotifier
from entity_engine.core.types import ChangeEvent, Context
from entity_engine.events import Broker, LocalBroker


class TestChangeNotifier:
    """Test broadcast target selection and hook invocation."""

    @pytest.mark.asyncio
    async def test_no_cache_event(self, broker):
        notifier = ChangeNotifier(broker=broker)

        await notifier.notify(ChangeEvent("create", {"_id": 1}))

        assert broker.get_published() == []

    @pytest.mark.asyncio
    async def test_context_broker_preferred(self, broker):
        service_broker = LocalBroker()
        notifier = ChangeNotifier("cache.clean", broker=service_broker)

        await notifier.notify(ChangeEvent("update", {}), Context(broker=broker))

        assert broker.get_published() == [("cache.clean", None)]
        assert service_broker.get_published() == []

    @pytest.mark.asyncio
    async def test_service_broker_fallback(self, broker):
        notifier = ChangeNotifier("cache.clean", broker=broker)

        await notifier.notify(ChangeEvent("remove", {}), Context())

        assert broker.get_published() == [("cache.clean", None)]

    @pytest.mark.asyncio
    async def test_missing_broker_logged(self, caplog):
        notifier = ChangeNotifier("cache.clean")

        with caplog.at_level("WARNING"):
            await notifier.notify(ChangeEvent("create", {}))

        assert "no broker available" in caplog.text

    @pytest.mark.asyncio
    async def test_sync_hook(self):
        hook = MagicMock(return_value=None)
        ctx = Context()
        notifier = ChangeNotifier(on_entity_changed=hook)

        await notifier.notify(ChangeEvent("replace", {"_id": 2}), ctx)

        hook.assert_called_once_with("replace", {"_id": 2}, ctx)

    @pytest.mark.asyncio
    async def test_async_hook_awaited(self):
        hook = AsyncMock()
        notifier = ChangeNotifier(on_entity_changed=hook)

        await notifier.notify(ChangeEvent("create", [{"_id": 1}], batch=True))

        hook.assert_awaited_once_with("create", [{"_id": 1}], None)

    @pytest.mark.asyncio
    async def test_broadcast_before_hook(self, broker):
        order = []
        broker.subscribe("cache.clean", lambda payload: order.append("broadcast"))
        notifier = ChangeNotifier(
            "cache.clean", broker=broker, on_entity_changed=lambda *args: order.append("hook")
        )

        await notifier.notify(ChangeEvent("create", {}))

        assert order == ["broadcast", "hook"]

    @pytest.mark.asyncio
    async def test_hook_error_propagates(self):
        notifier = ChangeNotifier(on_entity_changed=AsyncMock(side_effect=RuntimeError("hook")))

        with pytest.raises(RuntimeError):
            await notifier.notify(ChangeEvent("create", {}))


class TestLocalBroker:
    """Test the in-process broker."""

    @pytest.mark.asyncio
    async def test_handlers_called(self, broker):
        received = []
        async_handler = AsyncMock()
        broker.subscribe("posts.changed", received.append)
        broker.subscribe("posts.changed", async_handler)

        await broker.broadcast("posts.changed", {"id": 1})
        await broker.broadcast("other")

        assert received == [{"id": 1}]
        async_handler.assert_awaited_once_with({"id": 1})
        assert broker.get_published() == [("posts.changed", {"id": 1}), ("other", None)]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, broker):
        received = []
        broker.subscribe("posts.changed", received.append)
        broker.unsubscribe("posts.changed", received.append)
        broker.unsubscribe("unknown", received.append)

        await broker.broadcast("posts.changed")

        assert received == []

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        """Only the most recent broadcasts are kept."""
        broker = LocalBroker(max_published=3)

        for i in range(10_000):
            await broker.broadcast("cache.clean", i)

        assert broker.get_published() == [
            ("cache.clean", 9997),
            ("cache.clean", 9998),
            ("cache.clean", 9999),
        ]

    @pytest.mark.asyncio
    async def test_history_disabled(self):
        broker = LocalBroker(max_published=0)
        received = []
        broker.subscribe("cache.clean", received.append)

        await broker.broadcast("cache.clean", 1)

        assert received == [1]
        assert broker.get_published() == []

    @pytest.mark.asyncio
    async def test_default_history_size(self, broker):
        for i in range(DEFAULT_BROKER_HISTORY + 5):
            await broker.broadcast("cache.clean", i)

        assert len(broker.get_published()) == DEFAULT_BROKER_HISTORY

    def test_protocol(self, broker):
        assert isinstance(broker, Broker)
