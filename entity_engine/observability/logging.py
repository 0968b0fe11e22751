"""
Enhanced logging utilities for ENTITY_ENGINE.

Provides structured logging with correlation IDs and tenant context.
"""

import contextvars
import functools
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

T = TypeVar("T")

# Context variable for correlation ID
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

# Context variable for tenant context
_tenant_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "tenant_context", default=None
)


def get_correlation_id() -> str | None:
    """Get the current correlation ID from context."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Set a correlation ID in the current context.

    Args:
        correlation_id: Optional correlation ID (generates new one if None)

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    """Clear the correlation ID from context."""
    _correlation_id.set(None)


def set_tenant_context(
    tenant_key: str | None = None, **kwargs: Any
) -> contextvars.Token[dict[str, Any] | None]:
    """
    Set tenant context for logging.

    Args:
        tenant_key: Tenant key the current call targets
        **kwargs: Additional context (service_name, operation, etc.)

    Returns:
        Token that restores the previous context when passed to
        ``clear_tenant_context``
    """
    context = {"tenant_key": tenant_key, **kwargs}
    return _tenant_context.set(context)


def clear_tenant_context(token: contextvars.Token[dict[str, Any] | None] | None = None) -> None:
    """Clear tenant context, or restore the context in place before ``token`` was set."""
    if token is not None:
        _tenant_context.reset(token)
    else:
        _tenant_context.set(None)


def tenant_logging_scope(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """
    Decorator restoring the tenant context once an async operation returns.

    Tenant context set while the operation runs (e.g. when the adapter
    registry resolves the tenant) does not outlive the operation.
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        token = _tenant_context.set(_tenant_context.get())
        try:
            return await func(*args, **kwargs)
        finally:
            _tenant_context.reset(token)

    return wrapper


def get_logging_context() -> dict[str, Any]:
    """
    Get current logging context (correlation ID and tenant context).

    Returns:
        Dictionary with context information
    """
    context: dict[str, Any] = {
        "timestamp": datetime.now().isoformat(),
    }

    correlation_id = get_correlation_id()
    if correlation_id:
        context["correlation_id"] = correlation_id

    tenant_context = _tenant_context.get()
    if tenant_context:
        context.update(tenant_context)

    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that automatically adds context to log records.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Add context to log records."""
        context = get_logging_context()

        extra = kwargs.get("extra", {})
        if extra:
            context.update(extra)

        kwargs["extra"] = context
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    """
    Get a contextual logger that automatically adds correlation ID and context.

    Args:
        name: Logger name (typically __name__)

    Returns:
        ContextualLoggerAdapter instance
    """
    base_logger = logging.getLogger(name)
    return ContextualLoggerAdapter(base_logger, {})
