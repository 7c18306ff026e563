"""
Incident and IncidentUpdate models.

The IncidentUpdate log is authoritative. Incident.status, Incident.impact and
the AffectedComponent snapshots are a cache of folding that log in creation
order (see apps.incidents.replay), and are only written by the engine in the
same transaction that appends the corresponding log entry.
"""

from django.db import models
from django.utils import timezone

from apps.components.models import Component, ComponentStatus


class IncidentStatus(models.TextChoices):
    """Lifecycle status of an incident. Order is conventional, not enforced."""

    INVESTIGATING = "investigating", "Investigating"
    IDENTIFIED = "identified", "Identified"
    MONITORING = "monitoring", "Monitoring"
    RESOLVED = "resolved", "Resolved"


class IncidentImpact(models.TextChoices):
    NONE = "none", "None"
    MINOR = "minor", "Minor"
    MAJOR = "major", "Major"
    CRITICAL = "critical", "Critical"


class IncidentUpdateType(models.TextChoices):
    CREATED = "created", "Created"
    UPDATED = "updated", "Updated"
    RESOLVED = "resolved", "Resolved"
    CLOSED = "closed", "Closed"


class Incident(models.Model):
    """
    A tracked issue affecting one or more components.

    `version` increases on every engine write and guards against lost
    updates when the row lock is unavailable.
    """

    title = models.CharField(
        max_length=255,
    )
    description = models.TextField(
        help_text="Public description of the incident.",
    )
    status = models.CharField(
        max_length=20,
        choices=IncidentStatus.choices,
        default=IncidentStatus.INVESTIGATING,
        db_index=True,
    )
    impact = models.CharField(
        max_length=20,
        choices=IncidentImpact.choices,
        default=IncidentImpact.MINOR,
        db_index=True,
    )
    components = models.ManyToManyField(
        Component,
        through="AffectedComponent",
        related_name="incidents",
        blank=True,
    )
    version = models.PositiveIntegerField(
        default=0,
    )

    # Timestamps
    created_at = models.DateTimeField(
        auto_now_add=True,
    )
    updated_at = models.DateTimeField(
        auto_now=True,
    )
    resolved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the incident last entered the resolved status.",
    )

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status", "impact"], name="incident_status_impact_idx"),
            models.Index(fields=["updated_at"], name="incident_updated_at_idx"),
        ]

    def __str__(self):
        return f"[{self.status}] {self.title}"

    @property
    def is_resolved(self) -> bool:
        return self.status == IncidentStatus.RESOLVED

    def to_dict(self) -> dict:
        """Serialize with affected components joined to their live status."""
        return {
            "id": self.pk,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "impact": self.impact,
            "affected_components": [
                {
                    **affected.component.to_dict(),
                    "incident_status": affected.status,
                }
                for affected in self.affected.all()
            ],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


class AffectedComponent(models.Model):
    """
    A component affected by an incident.

    `status` is the status this incident last set the component to. It is a
    snapshot; the live value is Component.status.
    """

    incident = models.ForeignKey(
        Incident,
        on_delete=models.CASCADE,
        related_name="affected",
    )
    component = models.ForeignKey(
        Component,
        on_delete=models.PROTECT,
        related_name="incident_links",
    )
    status = models.CharField(
        max_length=32,
        choices=ComponentStatus.choices,
    )
    updated_at = models.DateTimeField(
        auto_now=True,
    )

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["incident", "component"],
                name="unique_incident_component",
            ),
        ]

    def __str__(self):
        return f"{self.incident_id} -> {self.component_id} ({self.status})"


class AppendOnlyError(Exception):
    """Raised on attempts to modify or delete an IncidentUpdate."""


class IncidentUpdate(models.Model):
    """
    One immutable entry in an incident's audit trail.

    status_* / impact_* are both null when that value did not change. The
    component status updates are the ComponentStatusChange rows this update
    owns.
    """

    incident = models.ForeignKey(
        Incident,
        on_delete=models.PROTECT,
        related_name="updates",
    )
    description = models.TextField(
        blank=True,
        default="",
    )
    type = models.CharField(
        max_length=20,
        choices=IncidentUpdateType.choices,
        db_index=True,
    )
    status_from = models.CharField(
        max_length=20,
        choices=IncidentStatus.choices,
        null=True,
        blank=True,
    )
    status_to = models.CharField(
        max_length=20,
        choices=IncidentStatus.choices,
        null=True,
        blank=True,
    )
    impact_from = models.CharField(
        max_length=20,
        choices=IncidentImpact.choices,
        null=True,
        blank=True,
    )
    impact_to = models.CharField(
        max_length=20,
        choices=IncidentImpact.choices,
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(
        default=timezone.now,
        editable=False,
        db_index=True,
    )

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["incident", "created_at"], name="incident_update_created_idx"),
        ]

    def __str__(self):
        return f"{self.incident_id}: {self.type} @ {self.created_at:%Y-%m-%d %H:%M:%S}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AppendOnlyError("Incident updates are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AppendOnlyError("Incident updates are append-only")

    @property
    def status_update(self) -> dict | None:
        if self.status_to is None:
            return None
        return {"from": self.status_from, "to": self.status_to}

    @property
    def impact_update(self) -> dict | None:
        if self.impact_to is None:
            return None
        return {"from": self.impact_from, "to": self.impact_to}

    @property
    def component_status_updates(self) -> list[dict]:
        return [change.to_dict() for change in self.component_changes.all()]

    def to_dict(self) -> dict:
        data = {
            "id": self.pk,
            "incident_id": self.incident_id,
            "description": self.description,
            "type": self.type,
            "component_status_updates": self.component_status_updates,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if self.status_update is not None:
            data["status_update"] = self.status_update
        if self.impact_update is not None:
            data["impact_update"] = self.impact_update
        return data
