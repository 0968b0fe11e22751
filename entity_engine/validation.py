"""
Payload validation.

The entity service calls ``validate(ctx, payload, type=..., old_entity=...)``
before every write and uses the returned payload. ``JsonSchemaValidator``
checks payloads against a JSON Schema; any other object with a compatible
``validate`` coroutine can be plugged in instead.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from jsonschema import SchemaError, ValidationError, validate

from .exceptions import ConfigurationError, ValidationFailedError

logger = logging.getLogger(__name__)


@runtime_checkable
class Validator(Protocol):
    """Validation collaborator used by the entity service."""

    async def validate(
        self,
        ctx: Any,
        payload: dict[str, Any],
        *,
        type: str,
        old_entity: Any = None,
    ) -> dict[str, Any]: ...


class PassthroughValidator:
    """Accepts every payload unchanged."""

    async def validate(
        self,
        ctx: Any,
        payload: dict[str, Any],
        *,
        type: str,
        old_entity: Any = None,
    ) -> dict[str, Any]:
        return payload


class JsonSchemaValidator:
    """
    Validates payloads against a JSON Schema.

    - ``create`` and ``replace`` use the schema as-is.
    - ``update`` (patch) ignores ``required`` so partial payloads pass.
    - ``remove`` returns the soft-delete marker, ``{soft_delete_field: now}``,
      when ``soft_delete_field`` is set, otherwise an empty payload.

    Example:
        validator = JsonSchemaValidator(
            {
                "type": "object",
                "properties": {"title": {"type": "string"}},
                "required": ["title"],
            },
            soft_delete_field="deleted_at",
        )
    """

    def __init__(self, schema: dict[str, Any], soft_delete_field: str | None = None) -> None:
        self.schema = schema
        self.soft_delete_field = soft_delete_field
        self._patch_schema = copy.deepcopy(schema)
        self._patch_schema.pop("required", None)

    def _schema_for(self, type: str) -> dict[str, Any]:
        return self._patch_schema if type == "update" else self.schema

    async def validate(
        self,
        ctx: Any,
        payload: dict[str, Any],
        *,
        type: str,
        old_entity: Any = None,
    ) -> dict[str, Any]:
        """
        Validate ``payload`` for a write of the given ``type``.

        Raises:
            ValidationFailedError: If the payload does not match the schema
            ConfigurationError: If the schema itself is invalid
        """
        if type == "remove":
            if self.soft_delete_field:
                return {self.soft_delete_field: datetime.now(timezone.utc)}
            return {}

        try:
            validate(instance=payload, schema=self._schema_for(type))
        except ValidationError as e:
            path = ".".join(str(part) for part in e.absolute_path) or None
            logger.debug(f"Payload rejected for '{type}': {e.message}")
            raise ValidationFailedError(
                e.message, field=path, context={"type": type}
            ) from e
        except SchemaError as e:
            raise ConfigurationError(f"Invalid JSON schema: {e.message}", config_key="schema") from e
        return payload
