"""URL configuration for the status page project."""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("apps.components.urls")),
    path("api/", include("apps.incidents.urls")),
]
