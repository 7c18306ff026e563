"""
Fold an incident's update log and compare it with the materialized row.

The log is authoritative; the Incident row and its AffectedComponent
snapshots are a cache that can be rebuilt from it.

Usage:
    report = replay_incident(incident.pk)
    if not report.consistent:
        replay_incident(incident.pk, rebuild=True)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from django.db.models import F
from django.utils import timezone

from apps.components.models import Component, ComponentStatusChange
from apps.components.transactions import run_atomic
from apps.incidents.exceptions import IncidentNotFound
from apps.incidents.models import (
    AffectedComponent,
    Incident,
    IncidentStatus,
    IncidentUpdate,
    IncidentUpdateType,
)

logger = logging.getLogger(__name__)


@dataclass
class FoldedState:
    """Incident state derived purely from its update log."""

    status: str | None = None
    impact: str | None = None
    resolved_at: datetime | None = None
    snapshots: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "impact": self.impact,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "affected_components": {str(k): v for k, v in sorted(self.snapshots.items())},
        }


@dataclass
class ReplayReport:
    incident_id: int
    folded: FoldedState
    issues: list[str] = field(default_factory=list)
    rebuilt: bool = False

    @property
    def consistent(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "incident_id": self.incident_id,
            "consistent": self.consistent,
            "rebuilt": self.rebuilt,
            "issues": self.issues,
            "folded": self.folded.to_dict(),
        }


def ordered_updates(incident_id: int) -> list[IncidentUpdate]:
    """The incident's updates in creation order, with their component changes."""
    return list(
        IncidentUpdate.objects.filter(incident_id=incident_id)
        .prefetch_related("component_changes")
        .order_by("created_at", "id")
    )


def fold_updates(updates: Iterable[IncidentUpdate], issues: list[str] | None = None) -> FoldedState:
    """
    Apply updates in order.

    When `issues` is given, log-shape problems found along the way are
    appended to it: a first entry that is not `created`, and status or impact
    entries whose `from` does not match the folded value or equals `to`.
    """
    state = FoldedState()
    for index, update in enumerate(updates):
        if issues is not None:
            _check_update_shape(update, index, state, issues)

        if update.status_to is not None:
            state.status = update.status_to
            state.resolved_at = (
                update.created_at if update.status_to == IncidentStatus.RESOLVED else None
            )
        if update.impact_to is not None:
            state.impact = update.impact_to
        for change in update.component_changes.all():
            state.snapshots[change.component_id] = change.to_status
    return state


def _check_update_shape(update: IncidentUpdate, index: int, state: FoldedState, issues: list[str]):
    label = f"update {update.pk}"
    if index == 0:
        if update.type != IncidentUpdateType.CREATED:
            issues.append(f"{label}: first update has type {update.type!r}, expected 'created'")
        if update.status_to is None or update.status_from is not None:
            issues.append(f"{label}: first update must set status from null")
        return

    if update.type == IncidentUpdateType.CREATED:
        issues.append(f"{label}: only the first update may have type 'created'")
    if update.status_to is not None:
        if update.status_from == update.status_to:
            issues.append(f"{label}: status update without change ({update.status_to})")
        elif update.status_from != state.status:
            issues.append(
                f"{label}: status from {update.status_from!r} but incident was {state.status!r}"
            )
    if update.impact_to is not None:
        if update.impact_from == update.impact_to:
            issues.append(f"{label}: impact update without change ({update.impact_to})")
        elif update.impact_from != state.impact:
            issues.append(
                f"{label}: impact from {update.impact_from!r} but incident was {state.impact!r}"
            )


def _check_component_history(component_ids: Iterable[int], issues: list[str]) -> None:
    """Live status and version of each component must match its latest recorded write."""
    for component in Component.objects.filter(pk__in=list(component_ids)).order_by("pk"):
        changes = list(
            ComponentStatusChange.objects.filter(component=component).order_by("version", "id")
        )
        if not changes:
            continue

        previous = None
        for change in changes:
            if previous is not None and change.from_status != previous.to_status:
                issues.append(
                    f"component {component.pk}: change v{change.version} from "
                    f"{change.from_status!r} but previous write set {previous.to_status!r}"
                )
            previous = change

        latest = changes[-1]
        if component.status != latest.to_status:
            issues.append(
                f"component {component.pk}: live status {component.status!r}, "
                f"history says {latest.to_status!r}"
            )
        if component.version != latest.version:
            issues.append(
                f"component {component.pk}: live version {component.version}, "
                f"history says {latest.version}"
            )


def _compare(incident: Incident, folded: FoldedState, issues: list[str]) -> None:
    if incident.status != folded.status:
        issues.append(f"status is {incident.status!r}, log says {folded.status!r}")
    if incident.impact != folded.impact:
        issues.append(f"impact is {incident.impact!r}, log says {folded.impact!r}")
    if incident.resolved_at != folded.resolved_at:
        issues.append(f"resolved_at is {incident.resolved_at}, log says {folded.resolved_at}")

    snapshots = dict(
        AffectedComponent.objects.filter(incident=incident).values_list("component_id", "status")
    )
    if snapshots != folded.snapshots:
        issues.append(f"affected components are {snapshots}, log says {folded.snapshots}")


def _rebuild(incident_id: int, folded: FoldedState) -> None:
    def _apply() -> None:
        incident = Incident.objects.select_for_update().get(pk=incident_id)
        Incident.objects.filter(pk=incident.pk).update(
            status=folded.status or incident.status,
            impact=folded.impact or incident.impact,
            resolved_at=folded.resolved_at,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )

        AffectedComponent.objects.filter(incident=incident).exclude(
            component_id__in=list(folded.snapshots)
        ).delete()
        for component_id, status in folded.snapshots.items():
            AffectedComponent.objects.update_or_create(
                incident=incident,
                component_id=component_id,
                defaults={"status": status},
            )

        for component in Component.objects.select_for_update().filter(
            pk__in=list(folded.snapshots)
        ).order_by("pk"):
            latest = (
                ComponentStatusChange.objects.filter(component=component)
                .order_by("-version", "-id")
                .first()
            )
            if latest and (component.status, component.version) != (
                latest.to_status,
                latest.version,
            ):
                Component.objects.filter(pk=component.pk).update(
                    status=latest.to_status,
                    version=latest.version,
                    updated_at=timezone.now(),
                )

    run_atomic(_apply, label=f"rebuild incident {incident_id}")


def replay_incident(incident_id: int, rebuild: bool = False) -> ReplayReport:
    """
    Fold the update log of one incident and report mismatches.

    Args:
        incident_id: Incident to check.
        rebuild: Rewrite the materialized row from the fold when inconsistent.

    Raises:
        IncidentNotFound: no such incident.
    """
    incident = Incident.objects.filter(pk=incident_id).first()
    if incident is None:
        raise IncidentNotFound(incident_id)

    issues: list[str] = []
    updates = ordered_updates(incident_id)
    if not updates:
        issues.append("incident has no updates")
    folded = fold_updates(updates, issues)
    _compare(incident, folded, issues)
    _check_component_history(folded.snapshots, issues)

    report = ReplayReport(incident_id=incident_id, folded=folded, issues=issues)
    if report.issues:
        logger.warning(f"Incident {incident_id} inconsistent: {report.issues}")
        if rebuild and updates:
            _rebuild(incident_id, folded)
            report.rebuilt = True
            logger.info(f"Incident {incident_id} rebuilt from {len(updates)} updates")
    return report
