"""
Constants for ENTITY_ENGINE.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# ADAPTER REGISTRY CONSTANTS
# ============================================================================

DEFAULT_TENANT_KEY: Final[str] = "default"
"""Tenant key used when no multi-tenant resolver is configured."""

DEFAULT_AUTO_RECONNECT: Final[bool] = True
"""Whether failed adapter connections are retried by default."""

DEFAULT_RECONNECT_DELAY: Final[float] = 1.0
"""Delay between connection attempts (seconds)."""

# ============================================================================
# PAGINATION CONSTANTS
# ============================================================================

DEFAULT_PAGE_SIZE: Final[int] = 10
"""Default page size for list-mode queries."""

DEFAULT_MAX_LIMIT: Final[int] = 0
"""Maximum page size / limit. 0 (or negative) means unlimited."""

PAGINATION_FIELDS: Final[tuple[str, ...]] = ("limit", "offset", "page", "page_size")
"""Query parameters that carry pagination information."""

NUMERIC_PARAM_FIELDS: Final[tuple[str, ...]] = PAGINATION_FIELDS
"""Query parameters coerced from strings to numbers."""

LIST_PARAM_FIELDS: Final[tuple[str, ...]] = ("sort", "fields", "populate", "search_fields")
"""Query parameters split from comma/space separated strings."""

# ============================================================================
# PRIMARY FIELD CONSTANTS
# ============================================================================

DEFAULT_PRIMARY_FIELD_NAME: Final[str] = "id"
"""Logical name of the primary field exposed to callers."""

DEFAULT_PRIMARY_COLUMN_NAME: Final[str] = "_id"
"""Storage-level column name of the primary field."""

RAW_UPDATE_FLAG: Final[str] = "$raw"
"""Payload key that bypasses validation on patch updates."""

# ============================================================================
# CHANGE NOTIFICATION CONSTANTS
# ============================================================================

CHANGE_TYPES: Final[tuple[str, ...]] = ("create", "update", "replace", "remove")
"""Types of entity change events."""

DEFAULT_BROKER_HISTORY: Final[int] = 1000
"""Number of recent broadcasts a LocalBroker keeps."""

# ============================================================================
# MONGODB ADAPTER CONSTANTS
# ============================================================================

DEFAULT_MONGO_URI: Final[str] = "mongodb://localhost:27017"
"""Default MongoDB connection URI for the MongoDB adapter."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_MAX_POOL_SIZE: Final[int] = 50
"""Default maximum MongoDB connection pool size."""

DEFAULT_MIN_POOL_SIZE: Final[int] = 1
"""Default minimum MongoDB connection pool size."""

DEFAULT_MAX_IDLE_TIME_MS: Final[int] = 45000
"""Default maximum idle time before closing connections (milliseconds)."""
