"""
Change notification after entity mutations.

This module is part of ENTITY_ENGINE - Entity Engine.
"""

import inspect
import logging
from collections.abc import Callable
from typing import Any

from ..events import Broker
from .types import ChangeEvent

logger = logging.getLogger(__name__)

EntityChangedHook = Callable[[str, Any, Any], Any]


class ChangeNotifier:
    """
    Fires after every mutating operation.

    First, when a cache-invalidation event name is configured, broadcasts it
    with no payload, on the call context's broker when the context carries
    one and on the service-wide broker otherwise. Then calls the
    ``entity_changed(type, data, ctx)`` hook, which may be sync or async.
    """

    def __init__(
        self,
        cache_event_name: str | None = None,
        broker: Broker | None = None,
        on_entity_changed: EntityChangedHook | None = None,
    ) -> None:
        """
        Args:
            cache_event_name: Event broadcast after each mutation (None disables it)
            broker: Process-wide broker
            on_entity_changed: Hook called with ``(type, data, ctx)``
        """
        self.cache_event_name = cache_event_name
        self.broker = broker
        self.on_entity_changed = on_entity_changed

    def _broker_for(self, ctx: Any) -> Broker | None:
        return getattr(ctx, "broker", None) or self.broker

    async def notify(self, event: ChangeEvent, ctx: Any = None) -> None:
        """Broadcast the cache-invalidation signal and call the change hook."""
        if self.cache_event_name:
            broker = self._broker_for(ctx)
            if broker is None:
                logger.warning(
                    f"Cache event '{self.cache_event_name}' configured but no broker available"
                )
            else:
                await broker.broadcast(self.cache_event_name)

        if self.on_entity_changed is not None:
            result = self.on_entity_changed(event.type, event.data, ctx)
            if inspect.isawaitable(result):
                await result
