"""Turn an incoming resource body into storable data plus asset changes."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, NamedTuple

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .context import PreparedAsset, RequestContext
from .definitions import ResourceDefinition
from .errors import ValidationError
from .models import Asset
from .validation import validate

# Computed keys a client may echo back from a representation.
_READ_ONLY_KEYS = frozenset(
    {"id", "$created", "$updated", "$author", "$editor", "$ephemeral", "$seed"}
)


class ProcessedBody(NamedTuple):
    data: dict[str, Any]
    prepared: list[PreparedAsset]
    dropped: list[str]


def _placeholder_index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _walk(
    schema: Mapping[str, Any],
    value: Any,
    path: tuple[str, ...],
    resolve: Callable[[Any, str], Any],
) -> Any:
    if schema.get("format") == "binary":
        return resolve(value, ".".join(path) or "$")

    if isinstance(value, Mapping):
        properties = schema.get("properties") or {}
        return {
            key: _walk(properties[key], item, (*path, key), resolve)
            if isinstance(properties.get(key), Mapping)
            else item
            for key, item in value.items()
        }

    items = schema.get("items")
    if isinstance(value, list) and isinstance(items, Mapping):
        return [
            _walk(items, item, (*path, str(index)), resolve)
            for index, item in enumerate(value)
        ]
    return value


def _resolve_expires(
    data: dict[str, Any],
    definition: ResourceDefinition,
    expires_hint: datetime | None,
) -> None:
    raw = data.get("$expires")
    if raw is None:
        data.pop("$expires", None)
        if expires_hint is not None:
            data["$expires"] = expires_hint
        else:
            delta = definition.expiry_delta()
            if delta is not None:
                data["$expires"] = timezone.now() + delta
        return

    parsed = parse_datetime(raw) if isinstance(raw, str) else None
    if parsed is None:
        raise ValidationError(
            "Resource validation failed",
            details={"$expires": ["is not a valid date-time"]},
        )
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    if parsed <= timezone.now():
        raise ValidationError(
            "Resource validation failed",
            details={"$expires": ["has already passed"]},
        )
    data["$expires"] = parsed


def process_resource_body(
    context: RequestContext,
    definition: ResourceDefinition,
    current_asset_ids: Iterable[uuid.UUID | str] = (),
    expires_hint: datetime | None = None,
    known_assets: Iterable[Asset] = (),
    partial: bool = False,
) -> ProcessedBody:
    """Validate ``context.body`` and resolve its binary properties.

    A binary property (``format: binary`` in the schema) holds either a
    numeric index into ``context.files``, the id of a known asset, or the name
    of a known asset. Each is rewritten to an asset id. ``$expires`` comes back
    as a datetime; ``$expires`` and ``$clonable`` stay in the data for the
    caller to pop.
    """

    body = context.body
    if not isinstance(body, Mapping):
        raise ValidationError("Resource body must be a JSON object")

    known = list(known_assets)
    by_id = {str(asset.id): asset for asset in known}
    by_name: dict[str, Asset] = {}
    for asset in known:
        if asset.name and (asset.name not in by_name or not asset.ephemeral):
            by_name[asset.name] = asset

    prepared_by_index: dict[int, PreparedAsset] = {}
    referenced: set[str] = set()
    errors: dict[str, list[str]] = {}

    def resolve(value: Any, path: str) -> Any:
        if value is None:
            return None
        # Known assets win over numeric strings, so an asset may be named "2024".
        if isinstance(value, str):
            if value in by_id:
                referenced.add(value)
                return value
            asset = by_name.get(value)
            if asset is not None:
                referenced.add(str(asset.id))
                return str(asset.id)
        index = _placeholder_index(value)
        if index is None:
            errors.setdefault(path, []).append("is not a known asset")
            return value
        if index >= len(context.files):
            errors.setdefault(path, []).append("references a missing file")
            return value
        item = prepared_by_index.get(index)
        if item is None:
            item = PreparedAsset(id=uuid.uuid4(), payload=context.files[index])
            prepared_by_index[index] = item
        referenced.add(str(item.id))
        return str(item.id)

    stripped = {key: value for key, value in body.items() if key not in _READ_ONLY_KEYS}
    data = _walk(definition.json_schema, stripped, (), resolve)
    if errors:
        raise ValidationError("Resource validation failed", details=errors)

    validate(definition.json_schema, data, partial=partial)
    _resolve_expires(data, definition, expires_hint)

    dropped = [
        str(asset_id)
        for asset_id in current_asset_ids
        if str(asset_id) not in referenced
    ]
    prepared = [prepared_by_index[index] for index in sorted(prepared_by_index)]
    return ProcessedBody(data=data, prepared=prepared, dropped=dropped)


def referenced_asset_ids(schema: Mapping[str, Any], data: Any) -> set[str]:
    """Asset ids held by the binary properties of already processed ``data``."""

    found: set[str] = set()

    def collect(value: Any, path: str) -> Any:
        if isinstance(value, str):
            found.add(value)
        return value

    _walk(schema, data, (), collect)
    return found
