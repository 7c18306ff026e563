"""
URL configuration for the components app.
"""

from django.urls import path

from apps.components.views import (
    ComponentDetailView,
    ComponentListView,
    GroupDetailView,
    GroupListView,
    PublicGroupsView,
    UngroupedComponentListView,
)

app_name = "components"

urlpatterns = [
    path("public/groups/", PublicGroupsView.as_view(), name="public_groups"),
    path("admin/components/", ComponentListView.as_view(), name="list"),
    path(
        "admin/components/ungrouped/",
        UngroupedComponentListView.as_view(),
        name="ungrouped",
    ),
    path(
        "admin/components/<int:component_id>/",
        ComponentDetailView.as_view(),
        name="detail",
    ),
    path("admin/groups/", GroupListView.as_view(), name="groups"),
    path("admin/groups/<int:group_id>/", GroupDetailView.as_view(), name="group_detail"),
]
