"""
Status helpers for components and groups.

Group status is never stored. It is recomputed from the members' current
statuses on every read.
"""

from __future__ import annotations

from typing import Iterable

from apps.components.exceptions import InvalidStatusError
from apps.components.models import ComponentStatus

# Low to high.
STATUS_SEVERITY: dict[str, int] = {
    ComponentStatus.OPERATIONAL: 0,
    ComponentStatus.UNDER_MAINTENANCE: 1,
    ComponentStatus.DEGRADED: 2,
    ComponentStatus.PARTIAL: 3,
    ComponentStatus.MAJOR: 4,
}


def severity(status: str) -> int:
    """Return the numeric severity of a status. Unknown values rank as 0."""
    return STATUS_SEVERITY.get(status, 0)


def highest_severity_status(statuses: Iterable[str]) -> str:
    """
    Return the most severe status in `statuses`.

    An empty input is operational. When several members share the highest
    severity the first one seen wins.
    """
    highest = ComponentStatus.OPERATIONAL.value
    highest_rank = 0
    for status in statuses:
        rank = severity(status)
        if rank > highest_rank:
            highest_rank = rank
            highest = status
    return highest


def group_status(group) -> str:
    """Aggregate display status for a Group, from its members' live status."""
    return highest_severity_status(c.status for c in group.ordered_components())


def parse_component_status(value) -> str:
    """Validate a component status value and return it as a plain string."""
    if value not in ComponentStatus.values:
        raise InvalidStatusError(
            f"Invalid component status: {value!r}. "
            f"Expected one of: {', '.join(ComponentStatus.values)}"
        )
    return str(value)
