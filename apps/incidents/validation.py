"""
Request validation for the incident engine.

Everything here runs before any store access, so a rejected request never
touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from apps.components.exceptions import InvalidStatusError
from apps.components.status import parse_component_status
from apps.incidents.exceptions import IncidentValidationError
from apps.incidents.models import IncidentImpact, IncidentStatus, IncidentUpdateType


@dataclass(frozen=True)
class ComponentStatusRequest:
    """Requested status for one component."""

    component_id: int
    status: str


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise IncidentValidationError(f"{field} must be a non-empty string")
    return value.strip()


def optional_text(value: Any, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise IncidentValidationError(f"{field} must be a string")
    return value.strip()


def _parse_choice(value: Any, choices, field: str) -> str:
    if value not in choices.values:
        raise IncidentValidationError(
            f"Invalid {field}: {value!r}. Expected one of: {', '.join(choices.values)}"
        )
    return str(value)


def parse_incident_status(value: Any) -> str:
    return _parse_choice(value, IncidentStatus, "status")


def parse_incident_impact(value: Any) -> str:
    return _parse_choice(value, IncidentImpact, "impact")


def parse_update_type(value: Any) -> str:
    """Caller supplied update type. `created` is reserved for the first update."""
    update_type = _parse_choice(value, IncidentUpdateType, "type")
    if update_type == IncidentUpdateType.CREATED:
        raise IncidentValidationError("type 'created' is reserved for the first incident update")
    return update_type


def _parse_component_id(raw: Any) -> int:
    if isinstance(raw, bool):
        raise IncidentValidationError(f"Invalid component id: {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise IncidentValidationError(f"Invalid component id: {raw!r}") from None


def parse_component_requests(items: Iterable[Any] | None) -> list[ComponentStatusRequest]:
    """
    Normalize [{"id": ..., "status": ...}, ...] into ComponentStatusRequest objects.

    A component listed twice keeps its first position and its last status.
    """
    if items is None:
        return []
    if isinstance(items, (str, bytes, dict)):
        raise IncidentValidationError("Component updates must be a list")

    by_id: dict[int, str] = {}
    for item in items:
        if isinstance(item, ComponentStatusRequest):
            component_id, status = item.component_id, item.status
        elif isinstance(item, dict):
            if "id" not in item or "status" not in item:
                raise IncidentValidationError("Component updates require 'id' and 'status'")
            component_id, status = _parse_component_id(item["id"]), item["status"]
        else:
            raise IncidentValidationError(f"Invalid component update: {item!r}")

        try:
            by_id[component_id] = parse_component_status(status)
        except InvalidStatusError as e:
            raise IncidentValidationError(str(e)) from e

    return [ComponentStatusRequest(cid, status) for cid, status in by_id.items()]
