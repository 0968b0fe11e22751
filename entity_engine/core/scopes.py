"""
Named query scopes.

A scope is either a static filter fragment, merged into the query with
existing values taking precedence, or a function ``scope(query, ctx)``
returning a new query.

Usage:
    scopes = {
        "active": {"status": "active"},
        "mine": lambda query, ctx: {**query, "owner": ctx.meta["user_id"]},
    }
    plan = apply_scopes({"scope": ["active", "mine"]}, ctx, scopes=scopes)
"""

import copy
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from .types import QueryPlan, Scope

logger = logging.getLogger(__name__)


def defaults_deep(target: dict[str, Any], defaults: Mapping[str, Any]) -> dict[str, Any]:
    """
    Recursively fill missing keys of ``target`` from ``defaults``.

    Values already present in ``target`` win; nested mappings are merged.
    ``target`` is modified in place and returned.
    """
    for key, value in defaults.items():
        if key not in target:
            target[key] = copy.deepcopy(value)
        elif isinstance(target[key], dict) and isinstance(value, Mapping):
            defaults_deep(target[key], value)
    return target


def active_scopes(plan: Mapping[str, Any], default_scopes: Sequence[str] | None) -> list[str]:
    """Return the scope names that apply to ``plan``."""
    scope = plan.get("scope")
    if scope:
        return [scope] if isinstance(scope, str) else list(scope)
    if scope is not False and default_scopes:
        return list(default_scopes)
    return []


def apply_scopes(
    plan: Mapping[str, Any],
    ctx: Any,
    *,
    scopes: Mapping[str, Scope] | None = None,
    default_scopes: Sequence[str] | None = None,
) -> QueryPlan:
    """
    Merge the active scopes into the plan's query.

    Args:
        plan: Query plan (not modified)
        ctx: Call context, handed to function scopes
        scopes: Registered scopes by name
        default_scopes: Scopes applied when the plan names none

    Returns:
        A new plan whose ``query`` is the folded result
    """
    result: dict[str, Any] = dict(plan)
    names = active_scopes(plan, default_scopes)
    if not names:
        return result  # type: ignore[return-value]

    registered = scopes or {}
    query = copy.deepcopy(plan.get("query") or {})
    for name in names:
        scope = registered.get(name)
        if scope is None:
            logger.debug(f"Skipping unknown scope '{name}'")
            continue
        if callable(scope):
            query = scope(query, ctx)
        else:
            query = defaults_deep(query, scope)

    result["query"] = query
    return result  # type: ignore[return-value]
