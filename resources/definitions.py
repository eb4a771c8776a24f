"""Typed view over the resource section of an app definition."""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, Literal, Mapping

from django.utils.dateparse import parse_duration
from pydantic import BaseModel, ConfigDict, Field

ResourceAction = Literal["create", "get", "query", "patch", "update", "delete"]

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)\s*(ms|s|m|h|d|w)", re.IGNORECASE)
_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}


def parse_expiry(value: str) -> timedelta:
    """Parse ``"1d"``, ``"2h 30m"``, ``"P1D"`` or ``"01:00:00"`` into a timedelta."""

    delta = parse_duration(value)
    if delta is not None:
        return delta

    compact = value.strip()
    parts = _DURATION_PART.findall(compact)
    if not parts or _DURATION_PART.sub("", compact).strip():
        raise ValueError(f"invalid duration: {value!r}")
    seconds = sum(float(amount) * _UNIT_SECONDS[unit.lower()] for amount, unit in parts)
    return timedelta(seconds=seconds)


class ActionDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    roles: list[str] | None = None


class HistoryDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: bool = False


class ResourceDefinition(BaseModel):
    """Schema, history and access configuration of one resource type."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    json_schema: dict[str, Any] = Field(default_factory=dict, alias="schema")
    history: bool | HistoryDefinition = False
    expires: str | None = None
    roles: list[str] | None = None
    create: ActionDefinition | None = None
    get: ActionDefinition | None = None
    query: ActionDefinition | None = None
    patch: ActionDefinition | None = None
    update: ActionDefinition | None = None
    delete: ActionDefinition | None = None

    @property
    def history_enabled(self) -> bool:
        return self.history is not False

    @property
    def history_keeps_data(self) -> bool:
        if isinstance(self.history, HistoryDefinition):
            return self.history.data
        return self.history is True

    def roles_for(self, action: ResourceAction) -> list[str]:
        """Roles allowed to run ``action``, falling back to the type's roles."""

        action_definition: ActionDefinition | None = getattr(self, action)
        if action_definition is not None and action_definition.roles is not None:
            return list(action_definition.roles)
        return list(self.roles or [])

    def expiry_delta(self) -> timedelta | None:
        if not self.expires:
            return None
        return parse_expiry(self.expires)


def get_resource_definition(
    definition: Mapping[str, Any] | None, resource_type: str
) -> ResourceDefinition | None:
    """Return the parsed definition of ``resource_type`` or ``None``."""

    resources = (definition or {}).get("resources") or {}
    raw = resources.get(resource_type)
    if raw is None:
        return None
    return ResourceDefinition.model_validate(raw)
