"""Custom Django admin app configuration."""

from django.contrib.admin.apps import AdminConfig


class StatusPageAdminConfig(AdminConfig):
    default_site = "config.admin.StatusPageAdminSite"
