"""Celery tasks for incident side effects."""

from __future__ import annotations

import logging
from typing import Any

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def notify_incident_created(self, event: dict[str, Any]) -> dict[str, Any]:
    """
    Deliver an IncidentCreated event to every active notification channel.

    Delivery failures are reported in the result and logged; they never
    affect the incident itself.

    Args:
        event: IncidentCreated.to_dict() payload.

    Returns:
        Delivery summary from IncidentNotifier.
    """
    from apps.notify.services import IncidentNotifier

    try:
        return IncidentNotifier().incident_created(event).to_dict()
    except Exception as e:
        logger.exception(f"Incident-created notification failed for {event.get('id')}")
        return {"sent": 0, "failed": 0, "skipped": 0, "errors": [str(e)]}
