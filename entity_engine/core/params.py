"""
Query parameter sanitization.

Normalizes raw, possibly string-encoded parameters (as they arrive from a
query string or an RPC payload) into a query plan and computes pagination.
Everything here is pure: no I/O, no shared state.

This module is part of ENTITY_ENGINE - Entity Engine.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

from ..constants import (
    DEFAULT_MAX_LIMIT,
    DEFAULT_PAGE_SIZE,
    LIST_PARAM_FIELDS,
    NUMERIC_PARAM_FIELDS,
    PAGINATION_FIELDS,
)
from ..exceptions import ValidationFailedError
from .types import QueryPlan

_SEPARATORS = re.compile(r"[\s,]+")


def _to_number(name: str, value: str) -> int | float:
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError as e:
        raise ValidationFailedError(
            f"Parameter '{name}' must be numeric, got {value!r}", field=name
        ) from e
    return int(number) if number.is_integer() else number


def split_fields(value: str) -> list[str]:
    """
    Split a comma and/or space separated string into a list of tokens.

    Example:
        split_fields("name, -age votes") -> ["name", "-age", "votes"]
    """
    return [token for token in _SEPARATORS.split(value) if token]


def parse_query(value: str) -> dict[str, Any]:
    """Parse a JSON-encoded filter."""
    try:
        query = json.loads(value)
    except json.JSONDecodeError as e:
        raise ValidationFailedError(f"Invalid JSON in 'query': {e.msg}", field="query") from e
    if not isinstance(query, dict):
        raise ValidationFailedError("Parameter 'query' must be a JSON object", field="query")
    return query


def sanitize_params(
    params: Mapping[str, Any] | None,
    *,
    remove_limit: bool = False,
    list_mode: bool = False,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_limit: int = DEFAULT_MAX_LIMIT,
) -> QueryPlan:
    """
    Sanitize incoming parameters for find, list, count and stream operations.

    Keys that are not query-plan keys (for example the primary id field) are
    kept as-is. The caller's mapping is never mutated.

    Args:
        params: Raw parameters
        remove_limit: Strip every pagination field (count, single-entity lookups)
        list_mode: Derive ``limit``/``offset`` from ``page``/``page_size``
        default_page_size: Page size used when none was requested
        max_limit: Upper bound for ``page_size`` and ``limit``; 0 or less disables it

    Returns:
        A new query plan

    Raises:
        ValidationFailedError: If a numeric field or the query is malformed
    """
    p: dict[str, Any] = dict(params or {})

    for name in NUMERIC_PARAM_FIELDS:
        if isinstance(p.get(name), str):
            p[name] = _to_number(name, p[name])

    if isinstance(p.get("query"), str):
        p["query"] = parse_query(p["query"])

    for name in LIST_PARAM_FIELDS:
        if isinstance(p.get(name), str):
            p[name] = split_fields(p[name])

    if remove_limit:
        for name in PAGINATION_FIELDS:
            p.pop(name, None)
        return p  # type: ignore[return-value]

    if list_mode:
        if not p.get("page_size"):
            p["page_size"] = default_page_size

        if not p.get("page"):
            p["page"] = 1

        if max_limit > 0 and p["page_size"] > max_limit:
            p["page_size"] = max_limit

        p["limit"] = p["page_size"]
        p["offset"] = (p["page"] - 1) * p["page_size"]

    if max_limit > 0 and p.get("limit") is not None and p["limit"] > max_limit:
        p["limit"] = max_limit

    return p  # type: ignore[return-value]
