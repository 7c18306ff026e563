"""Custom admin site for the status page ops console."""

import json

from django.contrib.admin import AdminSite
from django.db.models import Count
from django.utils.html import format_html

# Shared colors for status badges across admin pages.
STATUS_COLORS = {
    # Components
    "operational": "#28a745",
    "under_maintenance": "#17a2b8",
    "degraded": "#ffc107",
    "partial": "#fd7e14",
    "major": "#dc3545",
    # Incidents
    "investigating": "#ffc107",
    "identified": "#fd7e14",
    "monitoring": "#17a2b8",
    "resolved": "#28a745",
    # Impact
    "none": "#6c757d",
    "minor": "#17a2b8",
    "critical": "#dc3545",
}


def status_badge(value: str):
    """Render a colored badge for a status/impact value."""
    color = STATUS_COLORS.get(value, "#6c757d")
    return format_html(
        '<span style="background-color: {}; color: white; padding: 3px 8px; '
        'border-radius: 3px; font-size: 11px;">{}</span>',
        color,
        (value or "").replace("_", " ").upper(),
    )


def prettify_json(data) -> str:
    """Render JSON data as a preformatted block."""
    return format_html(
        '<pre style="white-space: pre-wrap;">{}</pre>',
        json.dumps(data, indent=2, sort_keys=True, default=str),
    )


class StatusPageAdminSite(AdminSite):
    site_header = "Status Page"
    site_title = "Status Page"
    index_title = "Dashboard"
    index_template = "admin/dashboard.html"

    def index(self, request, extra_context=None):
        extra_context = extra_context or {}
        extra_context.update(self._get_dashboard_context())
        return super().index(request, extra_context=extra_context)

    def _get_dashboard_context(self):
        from apps.components.models import Component
        from apps.components.services import GroupQueryService
        from apps.incidents.models import Incident, IncidentStatus

        active_incidents = list(
            Incident.objects.exclude(status=IncidentStatus.RESOLVED).order_by("-created_at")[:10]
        )

        component_counts = dict(
            Component.objects.values_list("status").annotate(count=Count("id")).values_list(
                "status", "count"
            )
        )

        return {
            "active_incidents": active_incidents,
            "component_counts": component_counts,
            "groups": GroupQueryService.list_groups_with_status(),
        }
