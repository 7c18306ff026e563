"""Notification message and the driver interface.

A NotificationMessage is channel-neutral: a subject, a greeting, body lines
and an optional call to action, plus the incident payload it was built from.
Drivers render it through Jinja2 templates and report a DeliveryResult. They
never raise for delivery problems.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from apps.notify.templating import NotificationTemplatingService

logger = logging.getLogger(__name__)

SEVERITIES = ("critical", "warning", "info", "success")


@dataclass(frozen=True)
class MessageAction:
    """A link the reader can follow, e.g. "View Incident"."""

    text: str
    url: str


@dataclass
class NotificationMessage:
    subject: str
    lines: list[str]
    severity: str = "info"
    greeting: str = "Hello,"
    action: Optional[MessageAction] = None
    event: str = "incident.created"
    incident: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.severity = (self.severity or "").lower()
        if self.severity not in SEVERITIES:
            self.severity = "info"

    @property
    def body(self) -> str:
        return "\n".join(self.lines)

    def to_context(self) -> dict[str, Any]:
        """Variables available to every notify template."""
        return {
            "subject": self.subject,
            "greeting": self.greeting,
            "lines": list(self.lines),
            "body": self.body,
            "action": asdict(self.action) if self.action else None,
            "severity": self.severity,
            "event": self.event,
            "incident": self.incident,
        }


@dataclass
class DeliveryResult:
    success: bool
    skipped: bool = False
    message_id: Optional[str] = None
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failed(cls, error: str) -> "DeliveryResult":
        return cls(success=False, error=error)

    @classmethod
    def skip(cls, reason: str) -> "DeliveryResult":
        return cls(success=True, skipped=True, metadata={"reason": reason})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class BaseNotifyDriver(ABC):
    """Delivers NotificationMessages to one kind of channel."""

    name: str = "base"
    description: str = ""
    required_config: tuple[str, ...] = ()
    optional_config: tuple[str, ...] = ()

    templating = NotificationTemplatingService()

    def validate_config(self, config: dict[str, Any]) -> bool:
        return all(config.get(key) for key in self.required_config)

    @abstractmethod
    def deliver(self, message: NotificationMessage, config: dict[str, Any]) -> DeliveryResult:
        """Send `message` using the channel `config`."""

    def render_bodies(
        self, message: NotificationMessage, config: dict[str, Any]
    ) -> tuple[str, Optional[str]]:
        return self.templating.render_bodies(self.name, message.to_context(), config)

    def _failure(self, action: str, error: Exception) -> DeliveryResult:
        logger.exception(f"{self.name} driver failed to {action}: {error}")
        return DeliveryResult.failed(f"Failed to {action}: {error}")
