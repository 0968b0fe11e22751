"""
Abstract Adapter

Defines the storage capability set the entity service relies on. Every
backend (MongoDB, in-memory, ...) implements this interface; the service
holds a polymorphic reference and never inspects the concrete type.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from ..core.types import Entity, PrimaryField

if TYPE_CHECKING:
    from ..core.service import EntityService


class Adapter(ABC):
    """
    Abstract storage adapter.

    Query methods receive a sanitized query plan (``query``, ``sort``,
    ``fields``, ``limit``, ``offset``, ...). Keys an adapter does not
    understand must be ignored.

    Example:
        class RedisAdapter(Adapter):
            async def connect(self) -> None:
                self._client = await aioredis.from_url(self.url)
            ...
    """

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        """
        Args:
            options: Backend specific options
        """
        self.options: dict[str, Any] = dict(options or {})
        self.service: "EntityService | None" = None
        self.primary_field = PrimaryField()

    def init(self, service: "EntityService") -> None:
        """
        Bind the adapter to the service that owns it.

        Called once, right after the adapter is created and before
        ``connect``.
        """
        self.service = service
        self.primary_field = service.primary_field

    @property
    def id_column(self) -> str:
        """Storage-level name of the primary field."""
        return self.primary_field.column_name

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection. Raising triggers the registry's reconnect policy."""

    async def disconnect(self) -> None:
        """Close the connection. Backends without connections keep the default no-op."""
        return None

    def to_public_id(self, id: Any) -> Any:
        """
        Convert a stored primary key back to the form callers pass in.

        Backends whose native ids differ from the ids callers use (e.g.
        MongoDB ObjectIds given as hex strings) override this.
        """
        return id

    @abstractmethod
    async def find(self, params: dict[str, Any]) -> list[Entity]:
        """
        Find entities matching a query plan.

        Args:
            params: Query plan

        Returns:
            List of matching entities, in backend order
        """

    @abstractmethod
    async def find_one(self, query: dict[str, Any]) -> Entity | None:
        """
        Find the first entity matching a filter.

        Args:
            query: Filter

        Returns:
            First matching entity or None
        """

    @abstractmethod
    def find_stream(self, params: dict[str, Any]) -> AsyncIterator[Entity]:
        """
        Lazily iterate over the entities matching a query plan.

        Returns:
            An async iterator producing one entity at a time
        """

    @abstractmethod
    async def count(self, params: dict[str, Any]) -> int:
        """Count entities matching the plan's ``query``."""

    @abstractmethod
    async def insert(self, entity: Entity) -> Entity:
        """Insert an entity and return it as stored (with its id)."""

    @abstractmethod
    async def insert_many(self, entities: list[Entity]) -> list[Entity]:
        """Insert entities and return them as stored, in input order."""

    @abstractmethod
    async def update_by_id(self, id: Any, changes: dict[str, Any], *, raw: bool = False) -> Entity | None:
        """
        Patch an entity.

        Args:
            id: Decoded primary key
            changes: Fields to set, or a backend-native update document when ``raw``
            raw: Whether ``changes`` is already backend-native

        Returns:
            The updated entity, or None if it does not exist
        """

    @abstractmethod
    async def replace_by_id(self, id: Any, entity: Entity) -> Entity | None:
        """Replace an entity entirely and return the stored version."""

    @abstractmethod
    async def remove_by_id(self, id: Any) -> Any:
        """Delete an entity by primary key and return the removed id."""

    @abstractmethod
    async def clear(self, params: dict[str, Any] | None = None) -> int:
        """Delete every entity and return how many were removed."""

    @abstractmethod
    async def create_index(self, definition: dict[str, Any]) -> Any:
        """Create an index from a backend-agnostic definition."""
