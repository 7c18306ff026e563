"""
Management command to check incidents against their update logs.

Usage:
    python manage.py verify_incidents                  # Check every incident
    python manage.py verify_incidents --incident 42    # Check one incident
    python manage.py verify_incidents --rebuild        # Rewrite inconsistent rows
    python manage.py verify_incidents --json           # Output as JSON

Exits with code 1 when inconsistencies remain.
"""

import json
import sys

from django.core.management.base import BaseCommand, CommandError

from apps.incidents.exceptions import IncidentNotFound
from apps.incidents.models import Incident
from apps.incidents.replay import replay_incident


class Command(BaseCommand):
    help = "Fold each incident's update log and compare it with the stored incident"

    def add_arguments(self, parser):
        parser.add_argument(
            "--incident",
            type=int,
            help="Only check this incident id.",
        )
        parser.add_argument(
            "--rebuild",
            action="store_true",
            help="Rewrite inconsistent incidents from their update log.",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            dest="json_output",
            help="Output results as JSON.",
        )

    def handle(self, *args, **options):
        if options["incident"] is not None:
            incident_ids = [options["incident"]]
        else:
            incident_ids = list(Incident.objects.order_by("pk").values_list("pk", flat=True))

        reports = []
        remaining = 0
        for incident_id in incident_ids:
            try:
                report = replay_incident(incident_id, rebuild=options["rebuild"])
            except IncidentNotFound as e:
                raise CommandError(str(e)) from e

            if report.rebuilt:
                if not replay_incident(incident_id).consistent:
                    remaining += 1
            elif not report.consistent:
                remaining += 1
            reports.append(report)

        if options["json_output"]:
            self.stdout.write(
                json.dumps(
                    {
                        "checked": len(reports),
                        "inconsistent": remaining,
                        "reports": [r.to_dict() for r in reports],
                    },
                    indent=2,
                )
            )
        else:
            self._output_text(reports, remaining)

        if remaining:
            sys.exit(1)

    def _output_text(self, reports, remaining):
        for report in reports:
            if report.consistent:
                self.stdout.write(f"  {self.style.SUCCESS('OK')}    incident {report.incident_id}")
                continue
            label = "FIXED" if report.rebuilt else "FAIL"
            style = self.style.WARNING if report.rebuilt else self.style.ERROR
            self.stdout.write(f"  {style(label):5} incident {report.incident_id}")
            for issue in report.issues:
                self.stdout.write(f"        - {issue}")

        self.stdout.write("-" * 60)
        summary = f"Checked {len(reports)} incident(s), {remaining} inconsistent"
        if remaining:
            self.stdout.write(self.style.ERROR(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))
