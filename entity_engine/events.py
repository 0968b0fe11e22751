"""
Event broker used for cache invalidation broadcasts.

The entity service only needs a ``broadcast(event_name, payload=None)``
capability. ``LocalBroker`` is an in-process implementation that dispatches
to subscribed handlers and keeps a bounded record of recent broadcasts, which
makes it useful in tests as well as single-process deployments.
"""

import inspect
import logging
from collections import defaultdict, deque
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from .constants import DEFAULT_BROKER_HISTORY

logger = logging.getLogger(__name__)


@runtime_checkable
class Broker(Protocol):
    """Anything able to broadcast a named event."""

    async def broadcast(self, event_name: str, payload: Any = None) -> None: ...


class LocalBroker:
    """
    In-process broker dispatching broadcasts to subscribed handlers.

    Handlers may be plain functions or coroutine functions; they are called
    in subscription order with the payload.

    Example:
        broker = LocalBroker()
        broker.subscribe("cache.clean.posts", lambda payload: cache.clear())
        await broker.broadcast("cache.clean.posts")
    """

    def __init__(self, max_published: int = DEFAULT_BROKER_HISTORY) -> None:
        """
        Args:
            max_published: How many recent broadcasts to keep (0 keeps none)
        """
        self._handlers: dict[str, list[Callable[[Any], Any]]] = defaultdict(list)
        self._published: deque[tuple[str, Any]] = deque(maxlen=max_published)

    def subscribe(self, event_name: str, handler: Callable[[Any], Any]) -> None:
        """Register ``handler`` for ``event_name``."""
        self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Callable[[Any], Any]) -> None:
        """Remove a previously registered handler (no-op if unknown)."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    async def broadcast(self, event_name: str, payload: Any = None) -> None:
        """Record the event and call every handler subscribed to it."""
        self._published.append((event_name, payload))
        handlers = list(self._handlers.get(event_name, []))
        logger.debug(f"Broadcasting '{event_name}' to {len(handlers)} handler(s)")
        for handler in handlers:
            result = handler(payload)
            if inspect.isawaitable(result):
                await result

    def get_published(self) -> list[tuple[str, Any]]:
        """Return the most recent ``(event_name, payload)`` pairs, oldest first."""
        return list(self._published)
