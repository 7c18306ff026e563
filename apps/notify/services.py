"""
Incident notification delivery.

IncidentNotifier turns an IncidentCreated payload into a NotificationMessage
and sends it through every active, enabled NotificationChannel. Failures are
collected per channel; they never raise.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings

from apps.notify.drivers import (
    MessageAction,
    NotificationMessage,
    get_driver,
    is_notify_enabled,
)
from apps.notify.models import NotificationChannel, Subscriber, SubscriberType

logger = logging.getLogger(__name__)

# Incident impact -> notification severity
IMPACT_SEVERITY = {
    "none": "info",
    "minor": "warning",
    "major": "critical",
    "critical": "critical",
}


@dataclass
class NotificationResult:
    """Delivery summary across channels."""

    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def incident_url(incident_id) -> str | None:
    """Public link to an incident, when STATUSPAGE_PUBLIC_URL is set."""
    base = getattr(settings, "STATUSPAGE_PUBLIC_URL", "")
    if not base or incident_id is None:
        return None
    return f"{base.rstrip('/')}/incidents/{incident_id}"


class IncidentNotifier:
    """Deliver incident notifications to configured channels."""

    def build_message(self, event: dict[str, Any]) -> NotificationMessage:
        title = str(event.get("title") or "")
        lines = [f"A new incident has been created: {title}"]
        if event.get("description"):
            lines += ["", event["description"]]
        lines += ["", f"Status: {event.get('status')}", f"Impact: {event.get('impact')}"]

        url = incident_url(event.get("id"))
        return NotificationMessage(
            subject=f"[Incident] {title}",
            lines=lines,
            severity=IMPACT_SEVERITY.get(event.get("impact"), "info"),
            action=MessageAction("View Incident", url) if url else None,
            incident=dict(event),
        )

    def subscriber_addresses(self) -> list[str]:
        return list(
            Subscriber.objects.filter(is_active=True, type=SubscriberType.EMAIL).values_list(
                "address", flat=True
            )
        )

    def channel_config(self, channel: NotificationChannel) -> dict[str, Any]:
        config = dict(channel.config or {})
        if channel.driver == "email" and not config.get("to_addresses"):
            config["to_addresses"] = self.subscriber_addresses()
        return config

    def incident_created(self, event: dict[str, Any]) -> NotificationResult:
        """Send an incident-created notification to every active channel."""
        result = NotificationResult()
        message = self.build_message(event)

        for channel in NotificationChannel.objects.filter(is_active=True):
            if not is_notify_enabled(channel.driver):
                result.skipped += 1
                continue

            driver = get_driver(channel.driver)
            if driver is None:
                result.failed += 1
                result.errors.append(f"{channel.name}: unknown driver '{channel.driver}'")
                continue

            outcome = driver.deliver(message, self.channel_config(channel))
            if outcome.skipped:
                result.skipped += 1
            elif outcome.success:
                result.sent += 1
            else:
                result.failed += 1
                result.errors.append(f"{channel.name}: {outcome.error}")

        if result.errors:
            logger.warning(f"Incident {event.get('id')} notification errors: {result.errors}")
        logger.info(
            f"Incident {event.get('id')} notifications: "
            f"{result.sent} sent, {result.failed} failed, {result.skipped} skipped"
        )
        return result
