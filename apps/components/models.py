"""
Component and Group models.

A Component carries the single authoritative status for a monitored part of
the system. Every status write bumps its version and appends a
ComponentStatusChange row, so the current status can always be traced back to
the write that produced it. Groups only reference Components; their status is
computed on read (see apps.components.status).
"""

from django.db import models


class ComponentStatus(models.TextChoices):
    """Health status of a component."""

    OPERATIONAL = "operational", "Operational"
    UNDER_MAINTENANCE = "under_maintenance", "Under Maintenance"
    DEGRADED = "degraded", "Degraded"
    PARTIAL = "partial", "Partial Outage"
    MAJOR = "major", "Major Outage"


class ChangeSource(models.TextChoices):
    """Subsystem that performed a component status write."""

    INCIDENT = "incident", "Incident"
    MANUAL = "manual", "Manual"


class Component(models.Model):
    """
    A monitored part of the system with exactly one current status.

    `version` increases by one on every status write. Writers must supply the
    version they read; a mismatch means someone else wrote in between.
    """

    name = models.CharField(
        max_length=255,
        help_text="Display name of the component.",
    )
    description = models.TextField(
        blank=True,
        default="",
    )
    status = models.CharField(
        max_length=32,
        choices=ComponentStatus.choices,
        default=ComponentStatus.OPERATIONAL,
        db_index=True,
    )
    version = models.PositiveIntegerField(
        default=0,
        help_text="Number of status writes applied to this component.",
    )

    # Timestamps
    created_at = models.DateTimeField(
        auto_now_add=True,
    )
    updated_at = models.DateTimeField(
        auto_now=True,
    )

    class Meta:
        ordering = ["name", "id"]

    def __str__(self):
        return f"{self.name} ({self.status})"

    @property
    def is_operational(self) -> bool:
        return self.status == ComponentStatus.OPERATIONAL

    def to_dict(self) -> dict:
        return {
            "id": self.pk,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ComponentStatusChange(models.Model):
    """
    Append-only record of one component status write.

    Rows are never updated or deleted. For incident-driven writes the owning
    IncidentUpdate is set and the rows form its component status updates.
    """

    component = models.ForeignKey(
        Component,
        on_delete=models.PROTECT,
        related_name="status_changes",
    )
    incident_update = models.ForeignKey(
        "incidents.IncidentUpdate",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="component_changes",
        help_text="Incident update that performed this write (empty for manual edits).",
    )
    source = models.CharField(
        max_length=20,
        choices=ChangeSource.choices,
        default=ChangeSource.INCIDENT,
        db_index=True,
    )
    version = models.PositiveIntegerField(
        help_text="Component version produced by this write.",
    )
    from_status = models.CharField(
        max_length=32,
        choices=ComponentStatus.choices,
    )
    to_status = models.CharField(
        max_length=32,
        choices=ComponentStatus.choices,
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
    )

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["component", "version"],
                name="unique_component_status_version",
            ),
        ]
        indexes = [
            models.Index(fields=["component", "-version"], name="status_change_component_idx"),
        ]

    def __str__(self):
        return f"{self.component_id}: {self.from_status} -> {self.to_status} (v{self.version})"

    def to_dict(self) -> dict:
        return {
            "id": self.component_id,
            "from": self.from_status,
            "to": self.to_status,
        }


class Group(models.Model):
    """
    A named, ordered collection of Components.

    Membership does not imply ownership: a Component may belong to any number
    of groups. Groups have no stored status.
    """

    name = models.CharField(
        max_length=255,
    )
    description = models.TextField(
        blank=True,
        default="",
    )
    components = models.ManyToManyField(
        Component,
        through="GroupMembership",
        related_name="groups",
        blank=True,
    )

    # Timestamps
    created_at = models.DateTimeField(
        auto_now_add=True,
    )
    updated_at = models.DateTimeField(
        auto_now=True,
    )

    class Meta:
        ordering = ["name", "id"]

    def __str__(self):
        return self.name

    def ordered_components(self) -> list[Component]:
        """Return member components in membership order."""
        return [m.component for m in self.memberships.select_related("component")]


class GroupMembership(models.Model):
    """Position of a Component inside a Group."""

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    component = models.ForeignKey(
        Component,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    position = models.PositiveIntegerField(
        default=0,
    )

    class Meta:
        ordering = ["position", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["group", "component"],
                name="unique_group_component",
            ),
        ]

    def __str__(self):
        return f"{self.group.name}[{self.position}] {self.component.name}"
