"""
In-memory adapter.

Stores entities in a dictionary keyed by primary key. Useful for unit tests
and prototyping without database dependencies. Filters support equality
plus a small subset of MongoDB operators.
"""

import copy
import itertools
import logging
from collections.abc import AsyncIterator
from typing import Any

from ..core.types import Entity
from .base import Adapter

logger = logging.getLogger(__name__)

_COMPARISONS = {
    "$eq": lambda value, arg: value == arg,
    "$ne": lambda value, arg: value != arg,
    "$gt": lambda value, arg: value is not None and value > arg,
    "$gte": lambda value, arg: value is not None and value >= arg,
    "$lt": lambda value, arg: value is not None and value < arg,
    "$lte": lambda value, arg: value is not None and value <= arg,
    "$in": lambda value, arg: value in arg,
    "$nin": lambda value, arg: value not in arg,
}

_MISSING = object()


def _get_path(doc: dict[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op, arg in condition.items():
            if op == "$exists":
                if (value is not _MISSING) != bool(arg):
                    return False
                continue
            if op not in _COMPARISONS:
                raise ValueError(f"Unsupported query operator: {op}")
            actual = None if value is _MISSING else value
            try:
                if not _COMPARISONS[op](actual, arg):
                    return False
            except TypeError:
                return False
        return True
    return (None if value is _MISSING else value) == condition


def matches(doc: dict[str, Any], query: dict[str, Any] | None) -> bool:
    """Return True if ``doc`` satisfies ``query``."""
    for key, condition in (query or {}).items():
        if key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
        elif not _matches_condition(_get_path(doc, key), condition):
            return False
    return True


def _sort_docs(docs: list[dict[str, Any]], sort: list[str]) -> list[dict[str, Any]]:
    # Stable sorts applied from the least significant key; missing values sort lowest
    for spec in reversed(sort):
        descending = spec.startswith("-")
        name = spec.lstrip("-+")

        def key(doc, name=name):
            value = _get_path(doc, name)
            missing = value is _MISSING or value is None
            return (not missing, None if missing else value)

        docs.sort(key=key, reverse=descending)
    return docs


class MemoryAdapter(Adapter):
    """
    In-memory adapter implementation.

    Example:
        service = EntityService(settings=ServiceSettings(adapter="Memory"))
        await service.create_entity(None, {"title": "Hello"})
    """

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        super().__init__(options)
        self._storage: dict[Any, Entity] = {}
        self._ids = itertools.count(1)
        self.indexes: list[dict[str, Any]] = []
        self.connected = False

    async def connect(self) -> None:
        self.connected = True
        logger.debug("Memory adapter connected")

    async def disconnect(self) -> None:
        self.connected = False

    def _select(self, params: dict[str, Any]) -> list[Entity]:
        docs = [doc for doc in self._storage.values() if matches(doc, params.get("query"))]
        if params.get("sort"):
            docs = _sort_docs(docs, list(params["sort"]))
        offset = params.get("offset") or 0
        limit = params.get("limit")
        if offset:
            docs = docs[offset:]
        if limit is not None and limit > 0:
            docs = docs[:limit]
        return [copy.deepcopy(doc) for doc in docs]

    async def find(self, params: dict[str, Any]) -> list[Entity]:
        return self._select(params)

    async def find_one(self, query: dict[str, Any]) -> Entity | None:
        docs = self._select({"query": query, "limit": 1})
        return docs[0] if docs else None

    async def find_stream(self, params: dict[str, Any]) -> AsyncIterator[Entity]:
        for doc in self._select(params):
            yield doc

    async def count(self, params: dict[str, Any]) -> int:
        return sum(1 for doc in self._storage.values() if matches(doc, params.get("query")))

    async def insert(self, entity: Entity) -> Entity:
        doc = copy.deepcopy(entity)
        if doc.get(self.id_column) is None:
            doc[self.id_column] = next(self._ids)
        self._storage[doc[self.id_column]] = doc
        return copy.deepcopy(doc)

    async def insert_many(self, entities: list[Entity]) -> list[Entity]:
        return [await self.insert(entity) for entity in entities]

    async def update_by_id(self, id: Any, changes: dict[str, Any], *, raw: bool = False) -> Entity | None:
        doc = self._storage.get(id)
        if doc is None:
            return None
        if raw:
            for field, value in changes.get("$set", {}).items():
                doc[field] = copy.deepcopy(value)
            for field in changes.get("$unset", {}):
                doc.pop(field, None)
            for field, amount in changes.get("$inc", {}).items():
                doc[field] = doc.get(field, 0) + amount
        else:
            doc.update(copy.deepcopy(changes))
        return copy.deepcopy(doc)

    async def replace_by_id(self, id: Any, entity: Entity) -> Entity | None:
        if id not in self._storage:
            return None
        doc = copy.deepcopy(entity)
        doc[self.id_column] = id
        self._storage[id] = doc
        return copy.deepcopy(doc)

    async def remove_by_id(self, id: Any) -> Any:
        self._storage.pop(id, None)
        return id

    async def clear(self, params: dict[str, Any] | None = None) -> int:
        count = len(self._storage)
        self._storage.clear()
        return count

    async def create_index(self, definition: dict[str, Any]) -> Any:
        self.indexes.append(dict(definition))
        return definition.get("name") or "_".join(str(f) for f in definition.get("fields", []))
