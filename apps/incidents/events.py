"""
Domain events emitted by the incident engine.

Events are published only after the enclosing transaction commits. Publishing
hands the event to Celery; any failure here is logged and never reaches the
engine caller.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncidentCreated:
    """Payload for subscribers of newly created incidents."""

    id: int
    title: str
    description: str | None
    status: str
    impact: str

    @classmethod
    def from_incident(cls, incident) -> "IncidentCreated":
        return cls(
            id=incident.pk,
            title=incident.title,
            description=incident.description or None,
            status=incident.status,
            impact=incident.impact,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class EventPublisher:
    """Dispatch engine events to background workers."""

    def publish_incident_created(self, event: IncidentCreated) -> None:
        try:
            from apps.incidents.tasks import notify_incident_created

            notify_incident_created.delay(event.to_dict())
        except Exception:
            logger.exception(f"Failed to enqueue incident-created notification for {event.id}")
        else:
            logger.info(f"Queued incident-created notification for incident {event.id}")
