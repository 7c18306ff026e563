from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


INCIDENT_STATUS_CHOICES = [
    ("investigating", "Investigating"),
    ("identified", "Identified"),
    ("monitoring", "Monitoring"),
    ("resolved", "Resolved"),
]

INCIDENT_IMPACT_CHOICES = [
    ("none", "None"),
    ("minor", "Minor"),
    ("major", "Major"),
    ("critical", "Critical"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("components", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Incident",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("title", models.CharField(max_length=255)),
                (
                    "description",
                    models.TextField(help_text="Public description of the incident."),
                ),
                (
                    "status",
                    models.CharField(
                        choices=INCIDENT_STATUS_CHOICES,
                        db_index=True,
                        default="investigating",
                        max_length=20,
                    ),
                ),
                (
                    "impact",
                    models.CharField(
                        choices=INCIDENT_IMPACT_CHOICES,
                        db_index=True,
                        default="minor",
                        max_length=20,
                    ),
                ),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "resolved_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the incident last entered the resolved status.",
                        null=True,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="AffectedComponent",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("operational", "Operational"),
                            ("under_maintenance", "Under Maintenance"),
                            ("degraded", "Degraded"),
                            ("partial", "Partial Outage"),
                            ("major", "Major Outage"),
                        ],
                        max_length=32,
                    ),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "component",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="incident_links",
                        to="components.component",
                    ),
                ),
                (
                    "incident",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="affected",
                        to="incidents.incident",
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
            },
        ),
        migrations.AddField(
            model_name="incident",
            name="components",
            field=models.ManyToManyField(
                blank=True,
                related_name="incidents",
                through="incidents.AffectedComponent",
                to="components.component",
            ),
        ),
        migrations.CreateModel(
            name="IncidentUpdate",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("description", models.TextField(blank=True, default="")),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("created", "Created"),
                            ("updated", "Updated"),
                            ("resolved", "Resolved"),
                            ("closed", "Closed"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                (
                    "status_from",
                    models.CharField(
                        blank=True, choices=INCIDENT_STATUS_CHOICES, max_length=20, null=True
                    ),
                ),
                (
                    "status_to",
                    models.CharField(
                        blank=True, choices=INCIDENT_STATUS_CHOICES, max_length=20, null=True
                    ),
                ),
                (
                    "impact_from",
                    models.CharField(
                        blank=True, choices=INCIDENT_IMPACT_CHOICES, max_length=20, null=True
                    ),
                ),
                (
                    "impact_to",
                    models.CharField(
                        blank=True, choices=INCIDENT_IMPACT_CHOICES, max_length=20, null=True
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        db_index=True, default=django.utils.timezone.now, editable=False
                    ),
                ),
                (
                    "incident",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="updates",
                        to="incidents.incident",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.AddIndex(
            model_name="incident",
            index=models.Index(fields=["status", "impact"], name="incident_status_impact_idx"),
        ),
        migrations.AddIndex(
            model_name="incident",
            index=models.Index(fields=["updated_at"], name="incident_updated_at_idx"),
        ),
        migrations.AddConstraint(
            model_name="affectedcomponent",
            constraint=models.UniqueConstraint(
                fields=("incident", "component"), name="unique_incident_component"
            ),
        ),
        migrations.AddIndex(
            model_name="incidentupdate",
            index=models.Index(
                fields=["incident", "created_at"], name="incident_update_created_idx"
            ),
        ),
    ]
