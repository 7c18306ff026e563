"""
Incident lifecycle and status propagation engine.

IncidentEngine is the only writer of Incident rows, IncidentUpdate records and
incident-driven Component status changes. Each operation:

1. Validates the request (no store access yet)
2. Inside one atomic unit: locks the incident row, locks affected components
   in id order, reads every `from` status from the locked rows, appends one
   IncidentUpdate, writes the component changes, and compare-and-sets the
   incident row on its version
3. Retries the whole unit on version conflicts (run_atomic)
4. Publishes domain events after commit

Status ordering is deliberately not enforced: any status may follow any
other, including reopening a resolved incident.

Usage:
    engine = IncidentEngine()
    incident = engine.create_incident(
        "API latency", "Requests are slow",
        affected_components=[{"id": api.pk, "status": "degraded"}],
    )
    engine.post_update(incident.pk, description="Fix deployed", status="monitoring")
    engine.resolve(incident.pk)
"""

import logging
from typing import Any, Iterable

from django.conf import settings
from django.db import transaction
from django.db.models import F, Prefetch
from django.utils import timezone

from apps.components.models import ComponentStatus, ComponentStatusChange
from apps.components.services import ComponentStore
from apps.components.transactions import run_atomic
from apps.incidents.events import EventPublisher, IncidentCreated
from apps.incidents.exceptions import ConcurrentUpdateError, IncidentNotFound
from apps.incidents.models import (
    AffectedComponent,
    Incident,
    IncidentImpact,
    IncidentStatus,
    IncidentUpdate,
    IncidentUpdateType,
)
from apps.incidents.validation import (
    ComponentStatusRequest,
    optional_text,
    parse_component_requests,
    parse_incident_impact,
    parse_incident_status,
    parse_update_type,
    require_text,
)

logger = logging.getLogger(__name__)


def resolved_message() -> str:
    return getattr(settings, "STATUSPAGE_RESOLVED_MESSAGE", "Incident has been resolved.")


class IncidentQueryService:
    """Read side for incidents and their update logs."""

    @staticmethod
    def incidents():
        return Incident.objects.prefetch_related(
            Prefetch(
                "affected",
                queryset=AffectedComponent.objects.select_related("component").order_by("id"),
            )
        )

    @staticmethod
    def updates():
        return IncidentUpdate.objects.prefetch_related(
            Prefetch(
                "component_changes",
                queryset=ComponentStatusChange.objects.order_by("id"),
            )
        )

    @classmethod
    def get_incident(cls, incident_id: int) -> Incident:
        incident = cls.incidents().filter(pk=incident_id).first()
        if incident is None:
            raise IncidentNotFound(incident_id)
        return incident

    @classmethod
    def list_incidents(cls, before=None, after=None, only_active: bool = False):
        """
        List incidents, newest first.

        Date bounds filter on updated_at and take precedence over
        `only_active`, which hides resolved incidents.
        """
        qs = cls.incidents()
        if before is not None or after is not None:
            if after is not None:
                qs = qs.filter(updated_at__gte=after)
            if before is not None:
                qs = qs.filter(updated_at__lte=before)
        elif only_active:
            qs = qs.exclude(status=IncidentStatus.RESOLVED)
        return qs.order_by("-created_at", "-id")

    @classmethod
    def list_updates(cls, incident_id: int) -> list[IncidentUpdate]:
        """Updates for an incident, newest first."""
        if not Incident.objects.filter(pk=incident_id).exists():
            raise IncidentNotFound(incident_id)
        return list(cls.updates().filter(incident_id=incident_id).order_by("-created_at", "-id"))

    @classmethod
    def get_update(cls, update_id: int) -> IncidentUpdate:
        return cls.updates().get(pk=update_id)


class IncidentEngine:
    """
    Applies incident intents as atomic units.

    Args:
        component_store: Store used for component locks and status writes.
        publisher: Receives domain events after commit.
    """

    def __init__(
        self,
        component_store: ComponentStore | None = None,
        publisher: EventPublisher | None = None,
    ):
        self.components = component_store or ComponentStore()
        self.publisher = publisher or EventPublisher()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_incident(
        self,
        title: str,
        description: str,
        status: str | None = None,
        impact: str | None = None,
        affected_components: Iterable[Any] | None = None,
    ) -> Incident:
        """
        Create an incident and set its affected components' status.

        Unknown component ids are skipped. Returns the incident with
        components joined to their live status.
        """
        title = require_text(title, "title")
        description = require_text(description, "description")
        status = IncidentStatus.INVESTIGATING if status is None else parse_incident_status(status)
        impact = IncidentImpact.MINOR if impact is None else parse_incident_impact(impact)
        requests = parse_component_requests(affected_components)

        def _apply() -> Incident:
            return self._create(title, description, status, impact, requests)

        incident = run_atomic(_apply, label="create incident")
        logger.info(
            f"Incident created: {incident.pk} '{incident.title}' "
            f"({incident.status}/{incident.impact})"
        )

        event = IncidentCreated.from_incident(incident)
        transaction.on_commit(lambda: self.publisher.publish_incident_created(event))

        return IncidentQueryService.get_incident(incident.pk)

    def post_update(
        self,
        incident_id: int,
        description: str | None = None,
        status: str | None = None,
        impact: str | None = None,
        component_updates: Iterable[Any] | None = None,
        update_type: str | None = None,
    ) -> IncidentUpdate:
        """
        Append an update to an incident and apply the changes it carries.

        Only values that actually change are recorded. Posting status
        `resolved` cascades every affected component to operational.

        Raises:
            IncidentNotFound: unknown incident; nothing is written.
        """
        status = None if status is None else parse_incident_status(status)
        impact = None if impact is None else parse_incident_impact(impact)
        update_type = None if update_type is None else parse_update_type(update_type)
        description = optional_text(description, "description")
        requests = parse_component_requests(component_updates)

        if status == IncidentStatus.RESOLVED and not description:
            description = resolved_message()

        def _apply() -> IncidentUpdate:
            return self._apply_update(
                incident_id,
                description=description,
                status=status,
                impact=impact,
                requests=requests,
                update_type=update_type,
            )

        update = run_atomic(_apply, label=f"update incident {incident_id}")
        logger.info(f"Incident {incident_id} update {update.pk} ({update.type}) appended")
        return IncidentQueryService.get_update(update.pk)

    def resolve(
        self,
        incident_id: int,
        description: str | None = None,
        component_updates: Iterable[Any] | None = None,
    ) -> IncidentUpdate:
        """Resolve an incident. Sugar over post_update(status=resolved)."""
        return self.post_update(
            incident_id,
            description=description or resolved_message(),
            status=IncidentStatus.RESOLVED,
            component_updates=component_updates,
        )

    def update_incident(
        self,
        incident_id: int,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
        impact: str | None = None,
        affected_components: Iterable[Any] | None = None,
    ) -> Incident:
        """
        Edit incident fields.

        Title and description are edited in place. Status, impact and
        component changes are recorded through the update log; an `updated`
        entry is appended only when one of them actually changes.
        """
        fields: dict[str, str] = {}
        if title is not None:
            fields["title"] = require_text(title, "title")
        if description is not None:
            fields["description"] = require_text(description, "description")
        status = None if status is None else parse_incident_status(status)
        impact = None if impact is None else parse_incident_impact(impact)
        requests = parse_component_requests(affected_components)

        update_description = resolved_message() if status == IncidentStatus.RESOLVED else ""

        def _apply():
            return self._apply_update(
                incident_id,
                description=update_description,
                status=status,
                impact=impact,
                requests=requests,
                update_type=None,
                fields=fields,
                always_append=False,
            )

        update = run_atomic(_apply, label=f"edit incident {incident_id}")
        if update is not None:
            logger.info(f"Incident {incident_id} edited; update {update.pk} appended")
        else:
            logger.info(f"Incident {incident_id} edited")
        return IncidentQueryService.get_incident(incident_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_incident(self, incident_id: int) -> Incident:
        return IncidentQueryService.get_incident(incident_id)

    def list_updates(self, incident_id: int) -> list[IncidentUpdate]:
        return IncidentQueryService.list_updates(incident_id)

    # ------------------------------------------------------------------
    # Atomic unit bodies (called inside run_atomic)
    # ------------------------------------------------------------------

    def _create(
        self,
        title: str,
        description: str,
        status: str,
        impact: str,
        requests: list[ComponentStatusRequest],
    ) -> Incident:
        locked = self.components.lock_by_ids(r.component_id for r in requests)
        self._warn_skipped(requests, locked, "new incident")

        now = timezone.now()
        resolving = status == IncidentStatus.RESOLVED
        incident = Incident.objects.create(
            title=title,
            description=description,
            status=status,
            impact=impact,
            resolved_at=now if resolving else None,
        )
        update = IncidentUpdate.objects.create(
            incident=incident,
            description=description,
            type=IncidentUpdateType.CREATED,
            status_from=None,
            status_to=status,
            impact_from=None,
            impact_to=impact,
            created_at=now,
        )

        for request in requests:
            component = locked.get(request.component_id)
            if component is None:
                continue
            target = ComponentStatus.OPERATIONAL if resolving else request.status
            self.components.update_status(component, target, incident_update=update)
            AffectedComponent.objects.create(incident=incident, component=component, status=target)

        return incident

    def _apply_update(
        self,
        incident_id: int,
        description: str,
        status: str | None,
        impact: str | None,
        requests: list[ComponentStatusRequest],
        update_type: str | None,
        fields: dict[str, str] | None = None,
        always_append: bool = True,
    ) -> IncidentUpdate | None:
        incident = self._lock_incident(incident_id)

        previous_status = incident.status
        previous_impact = incident.impact
        new_status = status if status is not None and status != previous_status else None
        new_impact = impact if impact is not None and impact != previous_impact else None
        resolving = status == IncidentStatus.RESOLVED

        targets: dict[int, str] = {}
        for request in requests:
            targets[request.component_id] = (
                ComponentStatus.OPERATIONAL if resolving else request.status
            )
        if resolving:
            for affected in incident.affected.all():
                targets.setdefault(affected.component_id, ComponentStatus.OPERATIONAL)

        locked = self.components.lock_by_ids(targets)
        self._warn_skipped(requests, locked, f"incident {incident_id}")

        # `from` comes from the locked rows, never from incident snapshots.
        planned = [
            (locked[cid], to)
            for cid, to in targets.items()
            if cid in locked and locked[cid].status != to
        ]

        values: dict[str, Any] = dict(fields or {})
        has_changes = bool(new_status or new_impact or planned)
        update = None

        if always_append or has_changes:
            now = timezone.now()
            if update_type is None:
                update_type = (
                    IncidentUpdateType.RESOLVED if resolving else IncidentUpdateType.UPDATED
                )
            update = IncidentUpdate.objects.create(
                incident=incident,
                description=description,
                type=update_type,
                status_from=previous_status if new_status else None,
                status_to=new_status,
                impact_from=previous_impact if new_impact else None,
                impact_to=new_impact,
                created_at=now,
            )

            for component, target in planned:
                self.components.update_status(component, target, incident_update=update)
                AffectedComponent.objects.update_or_create(
                    incident=incident,
                    component=component,
                    defaults={"status": target},
                )

            if new_status:
                values["status"] = new_status
                values["resolved_at"] = now if new_status == IncidentStatus.RESOLVED else None
            if new_impact:
                values["impact"] = new_impact

        if update is not None or values:
            self._save_incident(incident, values)
        return update

    def _lock_incident(self, incident_id: int) -> Incident:
        incident = (
            Incident.objects.select_for_update()
            .filter(pk=incident_id)
            .first()
        )
        if incident is None:
            raise IncidentNotFound(incident_id)
        return incident

    def _save_incident(self, incident: Incident, values: dict[str, Any]) -> None:
        """Compare-and-set the incident row on the version read under lock."""
        updated = Incident.objects.filter(pk=incident.pk, version=incident.version).update(
            version=F("version") + 1,
            updated_at=timezone.now(),
            **values,
        )
        if updated == 0:
            raise ConcurrentUpdateError(
                f"Incident {incident.pk} changed since version {incident.version}"
            )

    def _warn_skipped(self, requests, locked, context: str) -> None:
        skipped = [r.component_id for r in requests if r.component_id not in locked]
        if skipped:
            logger.warning(f"Skipping unknown component ids for {context}: {skipped}")
