"""
Custom exceptions for ENTITY_ENGINE.

Orchestrator-level errors carry enough context (the offending id, the
params) to be actionable. Errors raised by adapters are never wrapped and
reach the caller unchanged.
"""

from typing import Any


class EntityEngineError(RuntimeError):
    """
    Base exception for Entity Engine errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (tenant_key,
                 entity_id, params, etc.)
    """

    code: str = "ENTITY_ENGINE_ERROR"
    status: int = 500

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class MissingIdFieldError(EntityEngineError):
    """
    Raised when an id-targeted operation received no id.

    Attributes:
        params: The parameters that were missing the id field
    """

    code = "MISSING_ID"
    status = 400

    def __init__(self, params: dict[str, Any] | None = None, field_name: str | None = None) -> None:
        context: dict[str, Any] = {}
        if field_name:
            context["field"] = field_name
        super().__init__("Missing id field.", context=context)
        self.params = params or {}
        self.field_name = field_name


class EntityNotFoundError(EntityEngineError):
    """
    Raised when a resolve/update/replace/remove matched no entity.

    Attributes:
        entity_id: The id (or ids) exactly as supplied by the caller
    """

    code = "NOT_FOUND"
    status = 404

    def __init__(self, entity_id: Any) -> None:
        super().__init__("Entity not found", context={"id": entity_id})
        self.entity_id = entity_id


class ValidationFailedError(EntityEngineError):
    """
    Raised when a payload or query parameter fails validation.

    Attributes:
        field: Name or JSON path of the offending field (if known)
        errors: List of individual validation messages
    """

    code = "VALIDATION_ERROR"
    status = 422

    def __init__(
        self,
        message: str,
        field: str | None = None,
        errors: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if field:
            context["field"] = field
        super().__init__(message, context=context)
        self.field = field
        self.errors = errors or [message]


class ConnectionFailedError(EntityEngineError):
    """
    Raised when an adapter could not connect and auto-reconnect is disabled.

    The adapter's own exception is chained as ``__cause__``.

    Attributes:
        tenant_key: Tenant key of the adapter that failed to connect
    """

    code = "CONNECTION_FAILED"
    status = 503

    def __init__(self, tenant_key: str, context: dict[str, Any] | None = None) -> None:
        context = context or {}
        context["tenant_key"] = tenant_key
        super().__init__("Adapter connection failed", context=context)
        self.tenant_key = tenant_key


class DisconnectError(EntityEngineError):
    """
    Raised by ``disconnect_all`` once every adapter has been disconnected
    when one or more of the disconnects failed.

    Attributes:
        errors: Mapping of tenant key to the exception raised while
                disconnecting that tenant's adapter
    """

    code = "DISCONNECT_FAILED"

    def __init__(self, errors: dict[str, BaseException]) -> None:
        super().__init__(
            f"Failed to disconnect {len(errors)} adapter(s)",
            context={"tenant_keys": sorted(errors)},
        )
        self.errors = errors


class ConfigurationError(EntityEngineError):
    """
    Raised when configuration is invalid or missing.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_value: Any | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error (if available)
            config_value: Configuration value that caused the error (if available)
            context: Additional context information
        """
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value
