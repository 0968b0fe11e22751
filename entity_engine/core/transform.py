"""
Result transforms.

A transform turns adapter output into the caller-facing shape. It is called
as ``await transform(adapter, result, params, ctx)`` where ``result`` is a
single entity, a list of entities or None.
"""

from typing import Any


async def identity_transform(adapter: Any, result: Any, params: dict[str, Any], ctx: Any) -> Any:
    """Return adapter results unchanged."""
    return result


def _project(doc: dict[str, Any], adapter: Any, fields: list[str] | None) -> dict[str, Any]:
    primary = adapter.primary_field
    codec = getattr(adapter.service, "id_codec", None)

    out = dict(doc)
    if primary.column_name != primary.name and primary.column_name in out:
        out[primary.name] = out.pop(primary.column_name)
    if primary.secure and codec is not None and out.get(primary.name) is not None:
        out[primary.name] = codec.encode_id(out[primary.name])

    if fields:
        out = {name: out[name] for name in fields if name in out}
    return out


async def public_transform(adapter: Any, result: Any, params: dict[str, Any], ctx: Any) -> Any:
    """
    Expose entities the way callers address them.

    - the storage column (``_id``) is renamed to the logical primary name (``id``)
    - secure ids are encoded with the service's id codec
    - when ``params["fields"]`` is set, only those fields are kept

    Usage:
        service = EntityService(settings, transform=public_transform)
    """
    fields = (params or {}).get("fields")
    if result is None:
        return None
    if isinstance(result, list):
        return [_project(doc, adapter, fields) for doc in result]
    return _project(result, adapter, fields)
