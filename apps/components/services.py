"""
Component and group services.

ComponentStore is the only code that writes Component.status. Writes are
compare-and-set on the component version and always append a
ComponentStatusChange, so status history and current status never diverge.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from django.db.models import F, Prefetch
from django.utils import timezone

from apps.components.exceptions import ComponentNotFound, ConcurrentUpdateError, GroupNotFound
from apps.components.models import (
    ChangeSource,
    Component,
    ComponentStatusChange,
    Group,
    GroupMembership,
)
from apps.components.status import highest_severity_status, parse_component_status
from apps.components.transactions import run_atomic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusChange:
    """Outcome of one component status write."""

    component_id: int
    from_status: str
    to_status: str

    @property
    def changed(self) -> bool:
        return self.from_status != self.to_status

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.component_id, "from": self.from_status, "to": self.to_status}


class ComponentStore:
    """
    Read and write access to Components.

    lock_by_ids and update_status must be called inside an atomic block
    (see apps.components.transactions.run_atomic).
    """

    def all(self):
        return Component.objects.all()

    def find_by_ids(self, ids: Iterable[int]) -> list[Component]:
        """Return the components that exist among `ids`, ordered by id."""
        ids = list(ids)
        if not ids:
            return []
        return list(Component.objects.filter(pk__in=ids).order_by("pk"))

    def lock_by_ids(self, ids: Iterable[int]) -> dict[int, Component]:
        """
        Lock and return existing components keyed by id.

        Rows are locked in ascending id order so concurrent operations that
        touch overlapping component sets cannot deadlock.
        """
        ids = sorted(set(ids))
        if not ids:
            return {}
        rows = Component.objects.select_for_update().filter(pk__in=ids).order_by("pk")
        return {c.pk: c for c in rows}

    def update_status(
        self,
        component: Component,
        new_status: str,
        incident_update=None,
        source: str = ChangeSource.INCIDENT,
    ) -> StatusChange:
        """
        Write `new_status` if the component is still at the version we read.

        Returns:
            StatusChange with the pre-write status as `from_status`.

        Raises:
            ConcurrentUpdateError: the stored version moved since `component`
                was read.
        """
        previous = component.status
        expected_version = component.version
        now = timezone.now()

        updated = Component.objects.filter(pk=component.pk, version=expected_version).update(
            status=new_status,
            version=F("version") + 1,
            updated_at=now,
        )
        if updated == 0:
            raise ConcurrentUpdateError(
                f"Component {component.pk} changed since version {expected_version}"
            )

        component.status = new_status
        component.version = expected_version + 1
        component.updated_at = now

        ComponentStatusChange.objects.create(
            component=component,
            incident_update=incident_update,
            source=source,
            version=component.version,
            from_status=previous,
            to_status=new_status,
        )
        logger.debug(
            f"Component {component.pk} status {previous} -> {new_status} (v{component.version})"
        )
        return StatusChange(component.pk, previous, new_status)

    def set_status(self, component_id: int, new_status: str) -> StatusChange:
        """
        Direct admin edit of a component status, as its own atomic unit.

        A request for the current status is a no-op and writes nothing.

        Raises:
            InvalidStatusError: unknown status value.
            ComponentNotFound: no such component.
        """
        _, change = self.edit(component_id, status=new_status)
        return change

    def edit(
        self,
        component_id: int,
        status: str | None = None,
        fields: dict[str, str] | None = None,
    ) -> tuple[Component, StatusChange | None]:
        """
        Apply a manual status change and plain field edits as one atomic unit.

        `fields` may hold `name` and `description`. Either both the status
        write and the field edit commit, or neither does.

        Raises:
            InvalidStatusError: unknown status value.
            ComponentNotFound: no such component.
        """
        if status is not None:
            status = parse_component_status(status)
        fields = fields or {}

        def _apply() -> tuple[Component, StatusChange | None]:
            component = self.lock_by_ids([component_id]).get(component_id)
            if component is None:
                raise ComponentNotFound(component_id)

            change = None
            if status is not None:
                if component.status == status:
                    change = StatusChange(component.pk, status, status)
                else:
                    change = self.update_status(component, status, source=ChangeSource.MANUAL)

            if fields:
                for name, value in fields.items():
                    setattr(component, name, value)
                component.updated_at = timezone.now()
                Component.objects.filter(pk=component.pk).update(
                    updated_at=component.updated_at, **fields
                )
            return component, change

        component, change = run_atomic(_apply, label=f"component {component_id} edit")
        if change is not None and change.changed:
            logger.info(
                f"Component {component_id} status set manually: "
                f"{change.from_status} -> {change.to_status}"
            )
        return component, change

    def latest_change(self, component_id: int) -> ComponentStatusChange | None:
        """Most recent write recorded for a component, if any."""
        return (
            ComponentStatusChange.objects.filter(component_id=component_id)
            .order_by("-version")
            .first()
        )


class GroupQueryService:
    """
    Groups and their membership.

    Group status is never stored: it is computed from live member status on
    every read.
    """

    @staticmethod
    def _groups_with_members():
        memberships = GroupMembership.objects.select_related("component").order_by(
            "position", "id"
        )
        return Group.objects.prefetch_related(Prefetch("memberships", queryset=memberships))

    @classmethod
    def list_groups_with_status(cls) -> list[dict[str, Any]]:
        """Return every group with its ordered members and aggregate status."""
        return [cls._group_dict(group) for group in cls._groups_with_members()]

    @staticmethod
    def _group_dict(group: Group) -> dict[str, Any]:
        members = [m.component for m in group.memberships.all()]
        return {
            "id": group.pk,
            "name": group.name,
            "description": group.description,
            "status": highest_severity_status(c.status for c in members),
            "components": [c.to_dict() for c in members],
        }

    @classmethod
    def get_group_with_status(cls, group_id: int) -> dict[str, Any]:
        group = cls._groups_with_members().filter(pk=group_id).first()
        if group is None:
            raise GroupNotFound(group_id)
        return cls._group_dict(group)

    @staticmethod
    def list_ungrouped_components():
        """Components that belong to no group."""
        return Component.objects.filter(memberships__isnull=True)

    @staticmethod
    def _known_ids(component_ids: list[int]) -> list[int]:
        """Existing ids from `component_ids`, deduplicated, in request order."""
        existing = set(Component.objects.filter(pk__in=component_ids).values_list("pk", flat=True))
        ordered: list[int] = []
        for cid in component_ids:
            if cid in existing and cid not in ordered:
                ordered.append(cid)
        return ordered

    @staticmethod
    def _replace_members(group: Group, ordered: list[int]) -> None:
        GroupMembership.objects.filter(group=group).delete()
        GroupMembership.objects.bulk_create(
            [
                GroupMembership(group=group, component_id=cid, position=index)
                for index, cid in enumerate(ordered)
            ]
        )

    @classmethod
    def set_members(cls, group: Group, component_ids: list[int]) -> Group:
        """Replace a group's membership with `component_ids`, in that order.

        Unknown ids are ignored; duplicates keep their first position.
        """
        ordered = cls._known_ids(component_ids)

        def _apply() -> Group:
            cls._replace_members(group, ordered)
            return group

        return run_atomic(_apply, label=f"group {group.pk} members")

    @classmethod
    def create_group(
        cls,
        name: str,
        description: str = "",
        component_ids: list[int] | None = None,
    ) -> dict[str, Any]:
        """Create a group, optionally with members, and return it with its status."""
        ordered = cls._known_ids(component_ids or [])

        def _apply() -> Group:
            group = Group.objects.create(name=name, description=description)
            cls._replace_members(group, ordered)
            return group

        group = run_atomic(_apply, label="group create")
        logger.info(f"Group {group.pk} '{group.name}' created with {len(ordered)} member(s)")
        return cls.get_group_with_status(group.pk)

    @classmethod
    def update_group(
        cls,
        group_id: int,
        fields: dict[str, str] | None = None,
        component_ids: list[int] | None = None,
    ) -> dict[str, Any]:
        """
        Edit a group's name or description and, when `component_ids` is
        given, replace its membership. All changes commit together.

        Raises:
            GroupNotFound: no such group.
        """
        fields = fields or {}
        ordered = cls._known_ids(component_ids) if component_ids is not None else None

        def _apply() -> Group:
            group = Group.objects.select_for_update().filter(pk=group_id).first()
            if group is None:
                raise GroupNotFound(group_id)
            if fields:
                for name, value in fields.items():
                    setattr(group, name, value)
                group.save(update_fields=[*fields, "updated_at"])
            if ordered is not None:
                cls._replace_members(group, ordered)
            return group

        run_atomic(_apply, label=f"group {group_id} update")
        logger.info(f"Group {group_id} updated")
        return cls.get_group_with_status(group_id)
