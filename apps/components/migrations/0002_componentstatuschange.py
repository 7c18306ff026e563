from django.db import migrations, models
import django.db.models.deletion


COMPONENT_STATUS_CHOICES = [
    ("operational", "Operational"),
    ("under_maintenance", "Under Maintenance"),
    ("degraded", "Degraded"),
    ("partial", "Partial Outage"),
    ("major", "Major Outage"),
]


class Migration(migrations.Migration):

    dependencies = [
        ("components", "0001_initial"),
        ("incidents", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="ComponentStatusChange",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[("incident", "Incident"), ("manual", "Manual")],
                        db_index=True,
                        default="incident",
                        max_length=20,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        help_text="Component version produced by this write."
                    ),
                ),
                (
                    "from_status",
                    models.CharField(choices=COMPONENT_STATUS_CHOICES, max_length=32),
                ),
                (
                    "to_status",
                    models.CharField(choices=COMPONENT_STATUS_CHOICES, max_length=32),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "component",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="status_changes",
                        to="components.component",
                    ),
                ),
                (
                    "incident_update",
                    models.ForeignKey(
                        blank=True,
                        help_text="Incident update that performed this write (empty for manual edits).",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="component_changes",
                        to="incidents.incidentupdate",
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "indexes": [
                    models.Index(
                        fields=["component", "-version"], name="status_change_component_idx"
                    )
                ],
            },
        ),
        migrations.AddConstraint(
            model_name="componentstatuschange",
            constraint=models.UniqueConstraint(
                fields=("component", "version"), name="unique_component_status_version"
            ),
        ),
    ]
