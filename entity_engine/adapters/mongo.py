"""
MongoDB adapter.

Implements the Adapter interface on top of motor. Each adapter instance
owns its own client, so every tenant gets an isolated connection pool
(and, usually, its own database).

This module is part of ENTITY_ENGINE - Entity Engine.
"""

import logging
import time
from collections.abc import AsyncIterator
from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from ..constants import (
    DEFAULT_MAX_IDLE_TIME_MS,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_MONGO_URI,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from ..core.types import Entity
from ..exceptions import ConfigurationError
from ..observability import get_logger as get_contextual_logger
from ..observability import record_operation
from .base import Adapter

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


def to_object_id(value: Any) -> Any:
    """Convert ObjectId-looking strings to ObjectId, leave anything else alone."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def sort_spec(sort: list[str] | None) -> list[tuple[str, int]]:
    """Translate ``["name", "-age"]`` into pymongo sort tuples."""
    spec = []
    for field in sort or []:
        if field.startswith("-"):
            spec.append((field[1:], DESCENDING))
        else:
            spec.append((field.lstrip("+"), ASCENDING))
    return spec


class MongoAdapter(Adapter):
    """
    MongoDB implementation of the Adapter interface.

    Options:
        uri: MongoDB connection URI (default: mongodb://localhost:27017)
        db_name: Database name (required)
        collection: Collection name (required)
        max_pool_size / min_pool_size: Connection pool bounds
        client_options: Extra keyword arguments for AsyncIOMotorClient

    Example:
        settings = ServiceSettings(
            adapter={
                "type": "MongoDB",
                "options": {"uri": "mongodb://mongo:27017", "db_name": "blog", "collection": "posts"},
            }
        )
    """

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        super().__init__(options)
        self.uri: str = self.options.get("uri", DEFAULT_MONGO_URI)
        self.db_name: str | None = self.options.get("db_name")
        self.collection_name: str | None = self.options.get("collection")
        if not self.db_name:
            raise ConfigurationError("MongoDB adapter requires 'db_name'", config_key="db_name")
        if not self.collection_name:
            raise ConfigurationError(
                "MongoDB adapter requires 'collection'", config_key="collection"
            )

        self._client: AsyncIOMotorClient | None = None
        self._collection: AsyncIOMotorCollection | None = None

    @property
    def collection(self) -> AsyncIOMotorCollection:
        """
        Get the MongoDB collection.

        Raises:
            RuntimeError: If the adapter is not connected
        """
        if self._collection is None:
            raise RuntimeError("MongoAdapter not connected. Call connect() first.")
        return self._collection

    async def connect(self) -> None:
        """
        Create the client and verify the server is reachable.

        Connection errors propagate so the registry can apply its reconnect
        policy; a failed or cancelled client is closed before re-raising.
        """
        start_time = time.time()
        contextual_logger.info(
            "Connecting MongoDB adapter",
            extra={"db_name": self.db_name, "collection": self.collection_name},
        )
        client = AsyncIOMotorClient(
            self.uri,
            serverSelectionTimeoutMS=self.options.get(
                "server_selection_timeout_ms", DEFAULT_SERVER_SELECTION_TIMEOUT_MS
            ),
            appname="ENTITY_ENGINE",
            maxPoolSize=self.options.get("max_pool_size", DEFAULT_MAX_POOL_SIZE),
            minPoolSize=self.options.get("min_pool_size", DEFAULT_MIN_POOL_SIZE),
            maxIdleTimeMS=DEFAULT_MAX_IDLE_TIME_MS,
            **self.options.get("client_options", {}),
        )
        try:
            await client.admin.command("ping")
        except BaseException:
            client.close()
            record_operation("adapter.connect", (time.time() - start_time) * 1000, success=False)
            raise

        self._client = client
        self._collection = client[self.db_name][self.collection_name]
        duration_ms = (time.time() - start_time) * 1000
        record_operation("adapter.connect", duration_ms, success=True)
        contextual_logger.info(
            "MongoDB adapter connected",
            extra={"db_name": self.db_name, "duration_ms": round(duration_ms, 2)},
        )

    async def disconnect(self) -> None:
        """Close the client. Safe to call more than once."""
        if self._client is not None:
            self._client.close()
            contextual_logger.info("MongoDB adapter disconnected", extra={"db_name": self.db_name})
        self._client = None
        self._collection = None

    def to_public_id(self, id: Any) -> Any:
        """ObjectIds are handed back as hex strings."""
        if isinstance(id, ObjectId):
            return str(id)
        return id

    def _prepare_query(self, query: dict[str, Any] | None) -> dict[str, Any]:
        query = dict(query or {})
        id_filter = query.get(self.id_column)
        if isinstance(id_filter, dict):
            query[self.id_column] = {
                op: [to_object_id(v) for v in arg] if op in ("$in", "$nin") else to_object_id(arg)
                for op, arg in id_filter.items()
            }
        elif id_filter is not None:
            query[self.id_column] = to_object_id(id_filter)
        return query

    def _cursor(self, params: dict[str, Any]):
        cursor = self.collection.find(self._prepare_query(params.get("query")))
        sort = sort_spec(params.get("sort"))
        if sort:
            cursor = cursor.sort(sort)
        if params.get("offset"):
            cursor = cursor.skip(params["offset"])
        if params.get("limit"):
            cursor = cursor.limit(params["limit"])
        return cursor

    async def find(self, params: dict[str, Any]) -> list[Entity]:
        return await self._cursor(params).to_list(length=None)

    async def find_one(self, query: dict[str, Any]) -> Entity | None:
        return await self.collection.find_one(self._prepare_query(query))

    def find_stream(self, params: dict[str, Any]) -> AsyncIterator[Entity]:
        return self._cursor(params)

    async def count(self, params: dict[str, Any]) -> int:
        return await self.collection.count_documents(self._prepare_query(params.get("query")))

    async def insert(self, entity: Entity) -> Entity:
        doc = dict(entity)
        result = await self.collection.insert_one(doc)
        doc[self.id_column] = result.inserted_id
        logger.debug(f"Inserted entity with id={result.inserted_id}")
        return doc

    async def insert_many(self, entities: list[Entity]) -> list[Entity]:
        docs = [dict(entity) for entity in entities]
        result = await self.collection.insert_many(docs)
        for doc, inserted_id in zip(docs, result.inserted_ids):
            doc[self.id_column] = inserted_id
        logger.debug(f"Inserted {len(docs)} entities")
        return docs

    async def update_by_id(self, id: Any, changes: dict[str, Any], *, raw: bool = False) -> Entity | None:
        update = changes if raw else {"$set": changes}
        return await self.collection.find_one_and_update(
            {self.id_column: to_object_id(id)},
            update,
            return_document=ReturnDocument.AFTER,
        )

    async def replace_by_id(self, id: Any, entity: Entity) -> Entity | None:
        return await self.collection.find_one_and_replace(
            {self.id_column: to_object_id(id)},
            entity,
            return_document=ReturnDocument.AFTER,
        )

    async def remove_by_id(self, id: Any) -> Any:
        await self.collection.delete_one({self.id_column: to_object_id(id)})
        return id

    async def clear(self, params: dict[str, Any] | None = None) -> int:
        result = await self.collection.delete_many({})
        return result.deleted_count

    async def create_index(self, definition: dict[str, Any]) -> Any:
        """
        Create an index.

        Args:
            definition: ``{"fields": {"name": 1, "age": -1} | ["name", "-age"],
                          "unique": bool, "name": str}``

        Returns:
            The index name reported by MongoDB
        """
        fields = definition.get("fields")
        if isinstance(fields, dict):
            keys = list(fields.items())
        elif isinstance(fields, str):
            keys = sort_spec([fields])
        else:
            keys = sort_spec(list(fields or []))
        if not keys:
            raise ConfigurationError("Index definition requires 'fields'", config_key="fields")

        kwargs: dict[str, Any] = {}
        if definition.get("unique"):
            kwargs["unique"] = True
        if definition.get("sparse"):
            kwargs["sparse"] = True
        if definition.get("name"):
            kwargs["name"] = definition["name"]
        return await self.collection.create_index(keys, **kwargs)
