"""JSON-schema validation of resource bodies."""

from __future__ import annotations

from typing import Any, Mapping

from jsonschema import Draft7Validator
from jsonschema.validators import validator_for

from .errors import ValidationError

_SYSTEM_PROPERTIES: dict[str, dict[str, Any]] = {
    "id": {"type": "integer"},
    "$expires": {"type": "string"},
    "$clonable": {"type": "boolean"},
}


def resource_schema(schema: Mapping[str, Any], *, partial: bool = False) -> dict[str, Any]:
    """Return ``schema`` extended with the system properties of a resource.

    Partial bodies (patches) drop the top-level ``required`` list.
    """

    patched = dict(schema)
    patched["properties"] = {**dict(schema.get("properties") or {}), **_SYSTEM_PROPERTIES}
    if partial:
        patched["required"] = []
    return patched


def _error_path(error) -> str:
    parts = [str(part) for part in error.absolute_path]
    return ".".join(parts) if parts else "$"


def validate(schema: Mapping[str, Any], data: Any, partial: bool = False) -> None:
    """Raise :class:`ValidationError` with per-field details when invalid."""

    patched = resource_schema(schema, partial=partial)
    validator_cls = validator_for(patched, default=Draft7Validator)
    validator = validator_cls(patched)
    errors = sorted(validator.iter_errors(data), key=_error_path)
    if not errors:
        return

    details: dict[str, list[str]] = {}
    for error in errors:
        details.setdefault(_error_path(error), []).append(error.message)
    raise ValidationError("Resource validation failed", details=details)
