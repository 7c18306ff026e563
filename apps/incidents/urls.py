"""
URL configuration for the incidents app.
"""

from django.urls import path

from apps.incidents.views import (
    IncidentDetailView,
    IncidentListView,
    IncidentResolveView,
    IncidentUpdateListView,
    PublicIncidentListView,
)

app_name = "incidents"

urlpatterns = [
    path("public/incidents/", PublicIncidentListView.as_view(), name="public_list"),
    path("admin/incidents/", IncidentListView.as_view(), name="list"),
    path("admin/incidents/<int:incident_id>/", IncidentDetailView.as_view(), name="detail"),
    path(
        "admin/incidents/<int:incident_id>/updates/",
        IncidentUpdateListView.as_view(),
        name="updates",
    ),
    path(
        "admin/incidents/<int:incident_id>/resolve/",
        IncidentResolveView.as_view(),
        name="resolve",
    ),
]
