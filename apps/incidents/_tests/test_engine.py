from unittest.mock import MagicMock, patch

from django.test import TestCase, override_settings

from apps.components.models import Component, ComponentStatus, ComponentStatusChange
from apps.components.services import ComponentStore
from apps.incidents.events import IncidentCreated
from apps.incidents.exceptions import (
    ConcurrentUpdateError,
    IncidentNotFound,
    IncidentValidationError,
    TransactionFailure,
)
from apps.incidents.models import (
    AffectedComponent,
    Incident,
    IncidentImpact,
    IncidentStatus,
    IncidentUpdate,
    IncidentUpdateType,
)
from apps.incidents.replay import replay_incident
from apps.incidents.services import IncidentEngine


class EngineTestCase(TestCase):
    def setUp(self):
        self.publisher = MagicMock()
        self.engine = IncidentEngine(publisher=self.publisher)
        self.api = Component.objects.create(name="API")
        self.db = Component.objects.create(name="Database")
        self.web = Component.objects.create(name="Web", status=ComponentStatus.UNDER_MAINTENANCE)

    def status_of(self, component):
        component.refresh_from_db()
        return component.status

    def snapshots(self, incident):
        return dict(
            AffectedComponent.objects.filter(incident=incident).values_list("component_id", "status")
        )


class CreateIncidentTests(EngineTestCase):
    def test_create_with_defaults(self):
        incident = self.engine.create_incident("API latency", "Requests are slow")

        self.assertEqual(incident.status, IncidentStatus.INVESTIGATING)
        self.assertEqual(incident.impact, IncidentImpact.MINOR)
        self.assertEqual(incident.updates.count(), 1)

    def test_created_update_shape(self):
        incident = self.engine.create_incident(
            "Outage",
            "Everything is down",
            status="identified",
            impact="major",
            affected_components=[
                {"id": self.api.pk, "status": "major"},
                {"id": self.web.pk, "status": "partial"},
            ],
        )

        update = incident.updates.get()
        self.assertEqual(update.type, IncidentUpdateType.CREATED)
        self.assertEqual(update.status_update, {"from": None, "to": "identified"})
        self.assertEqual(update.impact_update, {"from": None, "to": "major"})
        self.assertEqual(
            update.component_status_updates,
            [
                {"id": self.api.pk, "from": "operational", "to": "major"},
                {"id": self.web.pk, "from": "under_maintenance", "to": "partial"},
            ],
        )

    def test_create_sets_component_status_and_snapshots(self):
        incident = self.engine.create_incident(
            "DB slow",
            "Queries time out",
            affected_components=[{"id": self.db.pk, "status": "degraded"}],
        )

        self.assertEqual(self.status_of(self.db), ComponentStatus.DEGRADED)
        self.assertEqual(self.snapshots(incident), {self.db.pk: "degraded"})
        data = incident.to_dict()
        self.assertEqual(data["affected_components"][0]["status"], "degraded")
        self.assertEqual(data["affected_components"][0]["incident_status"], "degraded")

    def test_unknown_component_ids_are_skipped(self):
        with self.assertLogs("apps.incidents.services", level="WARNING") as logs:
            incident = self.engine.create_incident(
                "Partial",
                "Some ids are wrong",
                affected_components=[
                    {"id": 9999, "status": "major"},
                    {"id": self.api.pk, "status": "major"},
                ],
            )

        self.assertIn("9999", "\n".join(logs.output))
        self.assertEqual(self.snapshots(incident), {self.api.pk: "major"})
        self.assertEqual(len(incident.updates.get().component_status_updates), 1)

    def test_rejects_empty_title(self):
        with self.assertRaises(IncidentValidationError):
            self.engine.create_incident("  ", "desc")
        self.assertFalse(Incident.objects.exists())

    def test_rejects_empty_description(self):
        with self.assertRaises(IncidentValidationError):
            self.engine.create_incident("Title", "")

    def test_rejects_unknown_enum_values(self):
        with self.assertRaises(IncidentValidationError):
            self.engine.create_incident("Title", "desc", status="exploding")
        with self.assertRaises(IncidentValidationError):
            self.engine.create_incident("Title", "desc", impact="catastrophic")
        with self.assertRaises(IncidentValidationError):
            self.engine.create_incident(
                "Title", "desc", affected_components=[{"id": self.api.pk, "status": "fine"}]
            )
        self.assertFalse(Incident.objects.exists())
        self.assertEqual(self.status_of(self.api), ComponentStatus.OPERATIONAL)

    def test_create_resolved_forces_components_operational(self):
        incident = self.engine.create_incident(
            "Backfilled",
            "Already fixed",
            status="resolved",
            affected_components=[{"id": self.db.pk, "status": "major"}],
        )

        self.assertEqual(self.status_of(self.db), ComponentStatus.OPERATIONAL)
        self.assertIsNotNone(incident.resolved_at)
        self.assertTrue(replay_incident(incident.pk).consistent)

    def test_event_published_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            incident = self.engine.create_incident("API latency", "Slow", impact="major")

        self.assertEqual(len(callbacks), 1)
        self.publisher.publish_incident_created.assert_called_once_with(
            IncidentCreated(
                id=incident.pk,
                title="API latency",
                description="Slow",
                status="investigating",
                impact="major",
            )
        )

    def test_no_event_when_create_fails(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(IncidentValidationError):
                self.engine.create_incident("", "Slow")

        self.assertEqual(callbacks, [])
        self.publisher.publish_incident_created.assert_not_called()


class PostUpdateTests(EngineTestCase):
    def setUp(self):
        super().setUp()
        self.incident = self.engine.create_incident(
            "API errors",
            "5xx spike",
            affected_components=[{"id": self.api.pk, "status": "partial"}],
        )

    def test_status_change_recorded(self):
        update = self.engine.post_update(self.incident.pk, "Found it", status="identified")

        self.assertEqual(update.type, IncidentUpdateType.UPDATED)
        self.assertEqual(update.status_update, {"from": "investigating", "to": "identified"})
        self.assertIsNone(update.impact_update)
        self.incident.refresh_from_db()
        self.assertEqual(self.incident.status, IncidentStatus.IDENTIFIED)

    def test_unchanged_values_are_not_recorded(self):
        update = self.engine.post_update(
            self.incident.pk,
            "Still looking",
            status="investigating",
            impact="minor",
            component_updates=[{"id": self.api.pk, "status": "partial"}],
        )

        self.assertIsNone(update.status_update)
        self.assertIsNone(update.impact_update)
        self.assertEqual(update.component_status_updates, [])
        self.assertNotIn("status_update", update.to_dict())

    def test_description_only_update(self):
        update = self.engine.post_update(self.incident.pk, "We are on it")

        self.assertEqual(update.description, "We are on it")
        self.assertEqual(update.component_status_updates, [])
        self.assertEqual(self.incident.updates.count(), 2)

    def test_from_is_read_from_live_component(self):
        ComponentStore().set_status(self.api.pk, "major")

        update = self.engine.post_update(
            self.incident.pk, component_updates=[{"id": self.api.pk, "status": "degraded"}]
        )

        self.assertEqual(
            update.component_status_updates,
            [{"id": self.api.pk, "from": "major", "to": "degraded"}],
        )

    def test_component_joins_affected_set(self):
        self.engine.post_update(
            self.incident.pk, component_updates=[{"id": self.db.pk, "status": "degraded"}]
        )

        self.assertEqual(
            self.snapshots(self.incident), {self.api.pk: "partial", self.db.pk: "degraded"}
        )

    def test_caller_supplied_type(self):
        update = self.engine.post_update(self.incident.pk, "Postmortem", update_type="closed")
        self.assertEqual(update.type, IncidentUpdateType.CLOSED)

    def test_created_type_rejected(self):
        with self.assertRaises(IncidentValidationError):
            self.engine.post_update(self.incident.pk, "x", update_type="created")

    def test_unknown_incident(self):
        with self.assertRaises(IncidentNotFound):
            self.engine.post_update(9999, "x", status="identified")
        self.assertEqual(IncidentUpdate.objects.count(), 1)

    def test_impact_change_recorded(self):
        update = self.engine.post_update(self.incident.pk, impact="critical")

        self.assertEqual(update.impact_update, {"from": "minor", "to": "critical"})
        self.incident.refresh_from_db()
        self.assertEqual(self.incident.impact, IncidentImpact.CRITICAL)

    def test_version_increases_per_write(self):
        self.incident.refresh_from_db()
        before = self.incident.version

        self.engine.post_update(self.incident.pk, "one")
        self.engine.post_update(self.incident.pk, "two")

        self.incident.refresh_from_db()
        self.assertEqual(self.incident.version, before + 2)

    def test_list_updates_newest_first(self):
        first = self.engine.post_update(self.incident.pk, "one")
        second = self.engine.post_update(self.incident.pk, "two")

        updates = self.engine.list_updates(self.incident.pk)
        self.assertEqual([u.pk for u in updates[:2]], [second.pk, first.pk])
        self.assertEqual(updates[-1].type, IncidentUpdateType.CREATED)

    def test_list_updates_unknown_incident(self):
        with self.assertRaises(IncidentNotFound):
            self.engine.list_updates(424242)


class ResolveTests(EngineTestCase):
    def test_resolve_cascades_to_affected_components(self):
        incident = self.engine.create_incident(
            "Outage",
            "Down",
            affected_components=[
                {"id": self.api.pk, "status": "major"},
                {"id": self.db.pk, "status": "operational"},
            ],
        )

        update = self.engine.resolve(incident.pk)

        self.assertEqual(update.type, IncidentUpdateType.RESOLVED)
        self.assertEqual(update.description, "Incident has been resolved.")
        self.assertEqual(update.status_update, {"from": "investigating", "to": "resolved"})
        self.assertEqual(
            update.component_status_updates,
            [{"id": self.api.pk, "from": "major", "to": "operational"}],
        )
        self.assertEqual(self.status_of(self.api), ComponentStatus.OPERATIONAL)
        self.assertEqual(self.status_of(self.db), ComponentStatus.OPERATIONAL)
        incident.refresh_from_db()
        self.assertEqual(incident.resolved_at, update.created_at)

    def test_post_update_resolved_also_cascades(self):
        incident = self.engine.create_incident(
            "Outage", "Down", affected_components=[{"id": self.api.pk, "status": "partial"}]
        )

        self.engine.post_update(incident.pk, "Fixed", status="resolved")

        self.assertEqual(self.status_of(self.api), ComponentStatus.OPERATIONAL)

    def test_resolve_rewrites_caller_entries_to_operational(self):
        incident = self.engine.create_incident(
            "Outage", "Down", affected_components=[{"id": self.api.pk, "status": "major"}]
        )

        update = self.engine.resolve(
            incident.pk, component_updates=[{"id": self.db.pk, "status": "degraded"}]
        )

        self.assertEqual(self.status_of(self.db), ComponentStatus.OPERATIONAL)
        self.assertEqual(
            [c["id"] for c in update.component_status_updates], [self.api.pk]
        )

    def test_resolve_uses_live_status_not_snapshot(self):
        first = self.engine.create_incident(
            "API slow", "Slow", affected_components=[{"id": self.api.pk, "status": "degraded"}]
        )
        self.engine.create_incident(
            "API down", "Down", affected_components=[{"id": self.api.pk, "status": "major"}]
        )

        update = self.engine.resolve(first.pk)

        self.assertEqual(
            update.component_status_updates,
            [{"id": self.api.pk, "from": "major", "to": "operational"}],
        )

    def test_resolve_skips_already_operational(self):
        incident = self.engine.create_incident(
            "Blip", "Short", affected_components=[{"id": self.api.pk, "status": "degraded"}]
        )
        ComponentStore().set_status(self.api.pk, "operational")

        update = self.engine.resolve(incident.pk)

        self.assertEqual(update.component_status_updates, [])

    def test_custom_description(self):
        incident = self.engine.create_incident("Blip", "Short")
        update = self.engine.resolve(incident.pk, "All clear")
        self.assertEqual(update.description, "All clear")

    @override_settings(STATUSPAGE_RESOLVED_MESSAGE="Back to normal.")
    def test_default_description_from_settings(self):
        incident = self.engine.create_incident("Blip", "Short")
        update = self.engine.post_update(incident.pk, status="resolved")
        self.assertEqual(update.description, "Back to normal.")

    def test_reopen_clears_resolved_at(self):
        incident = self.engine.create_incident("Blip", "Short")
        self.engine.resolve(incident.pk)

        update = self.engine.post_update(incident.pk, "It is back", status="investigating")

        self.assertEqual(update.status_update, {"from": "resolved", "to": "investigating"})
        incident.refresh_from_db()
        self.assertIsNone(incident.resolved_at)
        self.assertTrue(replay_incident(incident.pk).consistent)


class UpdateIncidentTests(EngineTestCase):
    def setUp(self):
        super().setUp()
        self.incident = self.engine.create_incident("Old title", "Old description")

    def test_title_edit_appends_no_update(self):
        incident = self.engine.update_incident(self.incident.pk, title="New title")

        self.assertEqual(incident.title, "New title")
        self.assertEqual(incident.updates.count(), 1)
        self.assertEqual(incident.version, self.incident.version + 1)

    def test_status_edit_goes_through_log(self):
        incident = self.engine.update_incident(self.incident.pk, status="monitoring")

        self.assertEqual(incident.status, IncidentStatus.MONITORING)
        latest = self.engine.list_updates(incident.pk)[0]
        self.assertEqual(latest.type, IncidentUpdateType.UPDATED)
        self.assertEqual(latest.status_update, {"from": "investigating", "to": "monitoring"})

    def test_no_changes_writes_nothing(self):
        incident = self.engine.update_incident(self.incident.pk, status="investigating")

        self.assertEqual(incident.updates.count(), 1)
        self.assertEqual(incident.version, self.incident.version)

    def test_components_edit(self):
        incident = self.engine.update_incident(
            self.incident.pk, affected_components=[{"id": self.web.pk, "status": "major"}]
        )

        self.assertEqual(self.snapshots(incident), {self.web.pk: "major"})
        self.assertTrue(replay_incident(incident.pk).consistent)

    def test_unknown_incident(self):
        with self.assertRaises(IncidentNotFound):
            self.engine.update_incident(999, title="x")


class ConcurrencyTests(EngineTestCase):
    def setUp(self):
        super().setUp()
        self.incident = self.engine.create_incident(
            "Outage", "Down", affected_components=[{"id": self.api.pk, "status": "major"}]
        )

    def test_version_conflict_is_retried_from_scratch(self):
        original = IncidentEngine._save_incident
        calls = []

        def flaky_save(engine, incident, values):
            calls.append(incident.pk)
            if len(calls) == 1:
                raise ConcurrentUpdateError("stale")
            return original(engine, incident, values)

        with patch.object(IncidentEngine, "_save_incident", flaky_save):
            update = self.engine.resolve(self.incident.pk)

        self.assertEqual(len(calls), 2)
        self.assertEqual(self.incident.updates.count(), 2)
        self.assertEqual(
            update.component_status_updates,
            [{"id": self.api.pk, "from": "major", "to": "operational"}],
        )
        # The rolled back attempt left no history behind.
        self.assertEqual(ComponentStatusChange.objects.filter(component=self.api).count(), 2)

    def test_transaction_failure_leaves_no_trace(self):
        with patch.object(
            IncidentEngine, "_save_incident", side_effect=ConcurrentUpdateError("stale")
        ):
            with self.assertRaises(TransactionFailure):
                self.engine.resolve(self.incident.pk)

        self.assertEqual(self.incident.updates.count(), 1)
        self.assertEqual(self.status_of(self.api), ComponentStatus.MAJOR)
        self.incident.refresh_from_db()
        self.assertEqual(self.incident.status, IncidentStatus.INVESTIGATING)

    def test_component_conflict_is_retried(self):
        original = ComponentStore.update_status
        calls = []

        def flaky_update(store, component, new_status, **kwargs):
            calls.append(component.pk)
            if len(calls) == 1:
                raise ConcurrentUpdateError("component moved")
            return original(store, component, new_status, **kwargs)

        with patch.object(ComponentStore, "update_status", flaky_update):
            self.engine.post_update(
                self.incident.pk, component_updates=[{"id": self.db.pk, "status": "degraded"}]
            )

        self.assertEqual(len(calls), 2)
        self.assertEqual(self.status_of(self.db), ComponentStatus.DEGRADED)
        self.assertEqual(self.incident.updates.count(), 2)


class LifecycleScenarioTests(EngineTestCase):
    def test_create_then_resolve(self):
        incident = self.engine.create_incident(
            "Checkout failing",
            "Payments error out",
            affected_components=[{"id": self.web.pk, "status": "major"}],
        )

        self.assertEqual(incident.status, IncidentStatus.INVESTIGATING)
        self.assertEqual(self.status_of(self.web), ComponentStatus.MAJOR)
        created = incident.updates.get()
        self.assertEqual(created.type, IncidentUpdateType.CREATED)
        self.assertEqual(
            created.component_status_updates,
            [{"id": self.web.pk, "from": "under_maintenance", "to": "major"}],
        )

        resolved = self.engine.post_update(incident.pk, status="resolved")

        incident.refresh_from_db()
        self.assertEqual(incident.status, IncidentStatus.RESOLVED)
        self.assertEqual(self.status_of(self.web), ComponentStatus.OPERATIONAL)
        self.assertEqual(resolved.type, IncidentUpdateType.RESOLVED)
        self.assertEqual(resolved.status_update, {"from": "investigating", "to": "resolved"})
        self.assertEqual(
            resolved.component_status_updates,
            [{"id": self.web.pk, "from": "major", "to": "operational"}],
        )

    def test_log_folds_to_incident_state(self):
        incident = self.engine.create_incident(
            "Mixed",
            "Several changes",
            affected_components=[{"id": self.api.pk, "status": "degraded"}],
        )
        self.engine.post_update(incident.pk, impact="major")
        self.engine.post_update(
            incident.pk,
            status="identified",
            component_updates=[
                {"id": self.db.pk, "status": "partial"},
                {"id": self.api.pk, "status": "major"},
            ],
        )
        self.engine.post_update(incident.pk, status="monitoring", impact="minor")
        self.engine.resolve(incident.pk)
        self.engine.post_update(incident.pk, status="investigating")

        report = replay_incident(incident.pk)

        self.assertTrue(report.consistent, report.issues)
        self.assertEqual(report.folded.status, "investigating")
        self.assertEqual(report.folded.impact, "minor")
        self.assertEqual(
            report.folded.snapshots, {self.api.pk: "operational", self.db.pk: "operational"}
        )
