import json
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from apps.components.models import Component, ComponentStatus
from apps.incidents.exceptions import IncidentNotFound
from apps.incidents.models import AffectedComponent, Incident, IncidentStatus
from apps.incidents.replay import fold_updates, ordered_updates, replay_incident
from apps.incidents.services import IncidentEngine


class ReplayTests(TestCase):
    def setUp(self):
        self.engine = IncidentEngine()
        self.api = Component.objects.create(name="API")
        self.db = Component.objects.create(name="DB")
        self.incident = self.engine.create_incident(
            "Outage",
            "Down",
            affected_components=[{"id": self.api.pk, "status": "major"}],
        )
        self.engine.post_update(
            self.incident.pk,
            status="identified",
            impact="major",
            component_updates=[{"id": self.db.pk, "status": "degraded"}],
        )

    def test_engine_output_is_consistent(self):
        report = replay_incident(self.incident.pk)

        self.assertTrue(report.consistent, report.issues)
        self.assertEqual(report.folded.status, "identified")
        self.assertEqual(report.folded.impact, "major")
        self.assertEqual(report.folded.snapshots, {self.api.pk: "major", self.db.pk: "degraded"})

    def test_fold_updates_in_creation_order(self):
        state = fold_updates(ordered_updates(self.incident.pk))
        self.assertEqual(state.status, "identified")
        self.assertIsNone(state.resolved_at)

    def test_detects_tampered_incident_row(self):
        Incident.objects.filter(pk=self.incident.pk).update(status=IncidentStatus.MONITORING)

        report = replay_incident(self.incident.pk)

        self.assertFalse(report.consistent)
        self.assertTrue(any("status" in issue for issue in report.issues))

    def test_detects_tampered_snapshot(self):
        AffectedComponent.objects.filter(incident=self.incident, component=self.db).delete()

        report = replay_incident(self.incident.pk)
        self.assertFalse(report.consistent)

    def test_detects_component_written_outside_store(self):
        Component.objects.filter(pk=self.api.pk).update(status=ComponentStatus.OPERATIONAL)

        report = replay_incident(self.incident.pk)

        self.assertFalse(report.consistent)
        self.assertTrue(any(f"component {self.api.pk}" in issue for issue in report.issues))

    def test_rebuild_restores_row_from_log(self):
        Incident.objects.filter(pk=self.incident.pk).update(
            status=IncidentStatus.RESOLVED, impact="none"
        )
        AffectedComponent.objects.filter(incident=self.incident).delete()
        Component.objects.filter(pk=self.api.pk).update(status=ComponentStatus.OPERATIONAL)

        report = replay_incident(self.incident.pk, rebuild=True)

        self.assertTrue(report.rebuilt)
        self.assertTrue(replay_incident(self.incident.pk).consistent)
        self.incident.refresh_from_db()
        self.assertEqual(self.incident.status, IncidentStatus.IDENTIFIED)
        self.api.refresh_from_db()
        self.assertEqual(self.api.status, ComponentStatus.MAJOR)

    def test_consistent_incident_is_not_rebuilt(self):
        report = replay_incident(self.incident.pk, rebuild=True)
        self.assertFalse(report.rebuilt)

    def test_unknown_incident(self):
        with self.assertRaises(IncidentNotFound):
            replay_incident(12345)

    def test_report_serializes(self):
        data = replay_incident(self.incident.pk).to_dict()
        self.assertTrue(data["consistent"])
        self.assertEqual(data["folded"]["status"], "identified")


@pytest.mark.django_db
class TestVerifyIncidentsCommand:
    def _incident(self):
        component = Component.objects.create(name="API")
        return IncidentEngine().create_incident(
            "Outage", "Down", affected_components=[{"id": component.pk, "status": "partial"}]
        )

    def test_all_consistent(self):
        self._incident()
        out = StringIO()

        call_command("verify_incidents", stdout=out)

        assert "1 incident(s), 0 inconsistent" in out.getvalue()

    def test_json_output(self):
        incident = self._incident()
        out = StringIO()

        call_command("verify_incidents", "--json", "--incident", str(incident.pk), stdout=out)

        data = json.loads(out.getvalue())
        assert data["checked"] == 1
        assert data["reports"][0]["consistent"] is True

    def test_inconsistent_exits_non_zero(self):
        incident = self._incident()
        Incident.objects.filter(pk=incident.pk).update(impact="critical")

        with pytest.raises(SystemExit) as exc:
            call_command("verify_incidents", stdout=StringIO())
        assert exc.value.code == 1

    def test_rebuild_fixes(self):
        incident = self._incident()
        Incident.objects.filter(pk=incident.pk).update(impact="critical")
        out = StringIO()

        call_command("verify_incidents", "--rebuild", stdout=out)

        assert "FIXED" in out.getvalue()
        incident.refresh_from_db()
        assert incident.impact == "minor"

    def test_unknown_incident(self):
        with pytest.raises(CommandError):
            call_command("verify_incidents", "--incident", "999", stdout=StringIO())
