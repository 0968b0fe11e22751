"""
Streaming pipeline for entity query results.

Wraps an adapter's lazy result sequence with an optional per-item
transform. Items are pulled one at a time, so a slow consumer pauses the
adapter cursor rather than buffering results in memory.
"""

import inspect
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from typing import Any, Optional


async def _close_source(source: Any) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()
        return
    close = getattr(source, "close", None)
    if close is not None:
        result = close()
        if inspect.isawaitable(result):
            await result


class EntityStream:
    """
    Async iterator over a transformed adapter result sequence.

    The source is closed exactly once: when it is exhausted, when the source
    or the transform raises, or when ``aclose()`` is called. ``aclose()``
    closes the source even if the stream was never iterated, so callers that
    may not consume a stream should close it (or use it as an async context
    manager).

    Example:
        async with await service.stream_entities(ctx, params) as stream:
            async for entity in stream:
                ...
    """

    def __init__(
        self,
        source: AsyncIterable[Any],
        transform: Callable[[Any], Awaitable[Any]] | None = None,
    ) -> None:
        self._source = source
        self._iterator: AsyncIterator[Any] | None = None
        self._transform = transform
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "EntityStream":
        return self

    async def __anext__(self) -> Any:
        if self._closed:
            raise StopAsyncIteration
        try:
            if self._iterator is None:
                self._iterator = self._source.__aiter__()
            item = await self._iterator.__anext__()
            if self._transform is not None:
                item = await self._transform(item)
        except BaseException:
            # Exhaustion, source errors and transform errors all end the stream
            await self.aclose()
            raise
        return item

    async def aclose(self) -> None:
        """Close the underlying source. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await _close_source(self._source)

    async def __aenter__(self) -> "EntityStream":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        await self.aclose()


def transform_stream(
    source: AsyncIterable[Any],
    transform: Callable[[Any], Awaitable[Any]] | None = None,
) -> EntityStream:
    """
    Yield items from ``source`` in order, mapping each through ``transform``.

    Errors raised by the source or the transform end the stream and
    propagate to the consumer; items already yielded stay delivered.

    Args:
        source: Adapter result sequence (e.g. a motor cursor)
        transform: Optional async per-item transform

    Returns:
        An ``EntityStream`` producing source items, transformed when a
        transform is given
    """
    return EntityStream(source, transform)
