"""Admin configuration for incident models."""

from django.contrib import admin, messages
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.incidents.exceptions import IncidentError, TransactionFailure
from apps.incidents.models import (
    AffectedComponent,
    Incident,
    IncidentStatus,
    IncidentUpdate,
)
from apps.incidents.replay import replay_incident
from apps.incidents.services import IncidentEngine
from config.admin import prettify_json, status_badge


class AffectedComponentInline(admin.TabularInline):
    """Components this incident touched, with the status it set them to."""

    model = AffectedComponent
    extra = 0
    readonly_fields = ["component", "status", "live_status", "updated_at"]
    fields = readonly_fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    @admin.display(description="Live status")
    def live_status(self, obj):
        return status_badge(obj.component.status)


class IncidentUpdateInline(admin.TabularInline):
    """Read-only update log of an incident."""

    model = IncidentUpdate
    extra = 0
    readonly_fields = ["type", "description", "status_to", "impact_to", "created_at"]
    fields = readonly_fields
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Incident)
class IncidentAdmin(DjangoObjectActions, admin.ModelAdmin):
    """Admin for Incident model.

    Saves are routed through IncidentEngine so every status and impact edit is
    recorded in the update log.
    """

    list_display = [
        "title",
        "status_display",
        "impact_display",
        "affected_count",
        "created_at",
        "resolved_at",
    ]
    list_filter = ["status", "impact"]
    search_fields = ["title", "description"]
    readonly_fields = ["version", "created_at", "updated_at", "resolved_at"]
    date_hierarchy = "created_at"
    inlines = [AffectedComponentInline, IncidentUpdateInline]
    actions = ["resolve_selected"]
    change_actions = ["resolve_incident", "verify_incident"]

    fieldsets = [
        (None, {"fields": ["title", "description"]}),
        ("Status", {"fields": ["status", "impact"]}),
        ("Timestamps", {"fields": ["version", "created_at", "updated_at", "resolved_at"]}),
    ]

    def get_queryset(self, request):
        return super().get_queryset(request).prefetch_related("affected")

    def save_model(self, request, obj, form, change):
        engine = IncidentEngine()
        if not change:
            created = engine.create_incident(
                obj.title, obj.description, status=obj.status, impact=obj.impact
            )
            obj.pk = created.pk
            obj.refresh_from_db()
            return
        try:
            engine.update_incident(
                obj.pk,
                title=obj.title,
                description=obj.description,
                status=obj.status,
                impact=obj.impact,
            )
        except (IncidentError, TransactionFailure) as e:
            self.message_user(request, f"Incident not saved: {e}", level=messages.ERROR)
            return
        obj.refresh_from_db()

    @admin.action(description="Resolve selected incidents")
    def resolve_selected(self, request, queryset):
        engine = IncidentEngine()
        count = 0
        for incident in queryset.exclude(status=IncidentStatus.RESOLVED):
            try:
                engine.resolve(incident.pk)
            except (IncidentError, TransactionFailure) as e:
                self.message_user(
                    request, f"Resolve failed for '{incident.title}': {e}", level=messages.ERROR
                )
                continue
            count += 1
        self.message_user(request, f"{count} incident(s) resolved.")

    @object_action(label="Resolve", description="Resolve and restore affected components")
    def resolve_incident(self, request, obj):
        if obj.status == IncidentStatus.RESOLVED:
            self.message_user(request, "Already resolved.", level="warning")
            return
        try:
            IncidentEngine().resolve(obj.pk)
        except TransactionFailure as e:
            self.message_user(request, f"Resolve failed: {e}", level=messages.ERROR)
            return
        self.message_user(request, f"Incident '{obj.title}' resolved.")

    @object_action(label="Verify", description="Check the incident against its update log")
    def verify_incident(self, request, obj):
        report = replay_incident(obj.pk)
        if report.consistent:
            self.message_user(request, "Incident matches its update log.")
        else:
            self.message_user(
                request,
                f"{len(report.issues)} inconsistency(ies): {'; '.join(report.issues)}",
                level="warning",
            )

    @admin.display(description="Status")
    def status_display(self, obj):
        return status_badge(obj.status)

    @admin.display(description="Impact")
    def impact_display(self, obj):
        return status_badge(obj.impact)

    @admin.display(description="Components")
    def affected_count(self, obj):
        return len(obj.affected.all())


@admin.register(IncidentUpdate)
class IncidentUpdateAdmin(admin.ModelAdmin):
    """Admin for IncidentUpdate model. Updates are audit records."""

    list_display = ["incident", "type", "status_to", "impact_to", "created_at"]
    list_filter = ["type"]
    search_fields = ["incident__title", "description"]
    readonly_fields = [
        "incident",
        "type",
        "description",
        "status_from",
        "status_to",
        "impact_from",
        "impact_to",
        "pretty_component_changes",
        "created_at",
    ]
    date_hierarchy = "created_at"

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("incident")

    @admin.display(description="Component status updates")
    def pretty_component_changes(self, obj):
        return prettify_json(obj.component_status_updates)

    def has_add_permission(self, request):
        """Updates are created by the incident engine."""
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
