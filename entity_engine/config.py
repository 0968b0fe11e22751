"""
Configuration management for ENTITY_ENGINE.

Settings are validated with Pydantic. They can be built directly, from a
plain mapping, or from ``ENTITY_*`` environment variables.

Example:
    # Direct parameters
    settings = ServiceSettings(default_page_size=25, max_limit=100)

    # Using environment variables
    settings = ServiceSettings.from_env()
"""

import os
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (
    DEFAULT_AUTO_RECONNECT,
    DEFAULT_MAX_LIMIT,
    DEFAULT_PAGE_SIZE,
    DEFAULT_PRIMARY_COLUMN_NAME,
    DEFAULT_PRIMARY_FIELD_NAME,
    DEFAULT_RECONNECT_DELAY,
)
from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .core.types import PrimaryField


class CacheSettings(BaseModel):
    """Cache invalidation broadcast settings."""

    enabled: bool = False
    event_name: str | None = None

    @property
    def active_event_name(self) -> str | None:
        """Event to broadcast after mutations, or None when disabled."""
        return self.event_name if self.enabled and self.event_name else None


class PrimaryFieldSettings(BaseModel):
    """Primary field descriptor settings."""

    model_config = ConfigDict(frozen=True)

    name: str = DEFAULT_PRIMARY_FIELD_NAME
    column_name: str | None = None
    secure: bool = False

    def to_primary_field(self) -> "PrimaryField":
        from .core.types import PrimaryField

        return PrimaryField(
            name=self.name,
            column_name=self.column_name or DEFAULT_PRIMARY_COLUMN_NAME,
            secure=self.secure,
        )


class ServiceSettings(BaseModel):
    """
    Entity service settings.

    Attributes:
        adapter: Adapter configuration (name, mapping, or Adapter instance)
        auto_reconnect: Retry failed connections forever instead of failing
        reconnect_delay: Delay between connection attempts in seconds
        default_page_size: Page size for list-mode queries
        max_limit: Upper bound for page size / limit (0 = unlimited)
        default_scopes: Scopes applied when a call names none
        scopes: Named scopes (filter fragments or functions)
        cache: Cache invalidation broadcast settings
        soft_delete: Remove entities by updating them instead of deleting
        primary_field: Primary field descriptor
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    adapter: Any = None
    auto_reconnect: bool = DEFAULT_AUTO_RECONNECT
    reconnect_delay: float = Field(DEFAULT_RECONNECT_DELAY, ge=0)
    default_page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1)
    max_limit: int = DEFAULT_MAX_LIMIT
    default_scopes: list[str] = Field(default_factory=list)
    scopes: dict[str, Any] = Field(default_factory=dict)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    soft_delete: bool = False
    primary_field: PrimaryFieldSettings = Field(default_factory=PrimaryFieldSettings)

    @field_validator("default_scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [name for name in value.replace(",", " ").split() if name]
        return value

    @field_validator("scopes")
    @classmethod
    def _check_scopes(cls, value: dict[str, Any]) -> dict[str, Any]:
        for name, scope in value.items():
            if not (callable(scope) or isinstance(scope, Mapping)):
                raise ValueError(f"scope '{name}' must be a mapping or a callable")
        return value

    @classmethod
    def load(cls, data: "ServiceSettings | Mapping[str, Any] | None" = None) -> "ServiceSettings":
        """
        Build settings from a mapping (or pass settings through).

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        if isinstance(data, ServiceSettings):
            return data
        try:
            return cls.model_validate(dict(data or {}))
        except ValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(part) for part in first.get("loc", ()))
            raise ConfigurationError(
                f"Invalid entity service settings: {first.get('msg')}",
                config_key=key or None,
                context={"error_count": e.error_count()},
            ) from e

    @classmethod
    def from_env(cls, **overrides: Any) -> "ServiceSettings":
        """
        Build settings from environment variables.

        Recognized variables:
            ENTITY_ADAPTER, ENTITY_AUTO_RECONNECT, ENTITY_RECONNECT_DELAY,
            ENTITY_DEFAULT_PAGE_SIZE, ENTITY_MAX_LIMIT, ENTITY_DEFAULT_SCOPES,
            ENTITY_CACHE_ENABLED, ENTITY_CACHE_EVENT_NAME, ENTITY_SOFT_DELETE

        Args:
            **overrides: Values taking precedence over the environment

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        data: dict[str, Any] = {}
        env = {
            "adapter": "ENTITY_ADAPTER",
            "auto_reconnect": "ENTITY_AUTO_RECONNECT",
            "reconnect_delay": "ENTITY_RECONNECT_DELAY",
            "default_page_size": "ENTITY_DEFAULT_PAGE_SIZE",
            "max_limit": "ENTITY_MAX_LIMIT",
            "default_scopes": "ENTITY_DEFAULT_SCOPES",
            "soft_delete": "ENTITY_SOFT_DELETE",
        }
        for key, var in env.items():
            value = os.getenv(var)
            if value is not None and value != "":
                data[key] = value

        cache: dict[str, Any] = {}
        if os.getenv("ENTITY_CACHE_ENABLED"):
            cache["enabled"] = os.getenv("ENTITY_CACHE_ENABLED")
        if os.getenv("ENTITY_CACHE_EVENT_NAME"):
            cache["event_name"] = os.getenv("ENTITY_CACHE_EVENT_NAME")
        if cache:
            data["cache"] = cache

        data.update(overrides)
        return cls.load(data)
