"""Admin configuration for component and group models."""

from django.contrib import admin, messages

from apps.components.exceptions import StatusPageError
from apps.components.models import Component, ComponentStatusChange, Group, GroupMembership
from apps.components.services import ComponentStore
from apps.components.status import group_status
from config.admin import status_badge


class ComponentStatusChangeInline(admin.TabularInline):
    """Read-only status history of a component."""

    model = ComponentStatusChange
    fk_name = "component"
    extra = 0
    readonly_fields = ["version", "from_status", "to_status", "source", "incident_update", "created_at"]
    fields = readonly_fields
    can_delete = False
    ordering = ["-version"]

    def has_add_permission(self, request, obj=None):
        return False


class GroupMembershipInline(admin.TabularInline):
    model = GroupMembership
    extra = 0
    fields = ["component", "position"]
    autocomplete_fields = ["component"]


@admin.register(Component)
class ComponentAdmin(admin.ModelAdmin):
    """Admin for Component model.

    Status edits on existing components go through ComponentStore so they are
    versioned and recorded like every other status write.
    """

    list_display = ["name", "status_display", "version", "updated_at"]
    list_filter = ["status"]
    search_fields = ["name", "description"]
    readonly_fields = ["version", "created_at", "updated_at"]
    inlines = [ComponentStatusChangeInline]

    fieldsets = [
        (None, {"fields": ["name", "description", "status"]}),
        ("Versioning", {"fields": ["version", "created_at", "updated_at"]}),
    ]

    @admin.display(description="Status")
    def status_display(self, obj):
        return status_badge(obj.status)

    def save_model(self, request, obj, form, change):
        if not change or "status" not in form.changed_data:
            super().save_model(request, obj, form, change)
            return

        requested = obj.status
        obj.status = Component.objects.values_list("status", flat=True).get(pk=obj.pk)
        obj.save(update_fields=["name", "description", "updated_at"])
        try:
            ComponentStore().set_status(obj.pk, requested)
        except StatusPageError as e:
            self.message_user(request, f"Status not changed: {e}", level=messages.ERROR)
        obj.refresh_from_db()


@admin.register(ComponentStatusChange)
class ComponentStatusChangeAdmin(admin.ModelAdmin):
    """Read-only view over the global component status history."""

    list_display = ["component", "version", "from_status", "to_status", "source", "created_at"]
    list_filter = ["source", "to_status"]
    search_fields = ["component__name"]
    date_hierarchy = "created_at"

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("component")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Group)
class GroupAdmin(admin.ModelAdmin):
    list_display = ["name", "computed_status", "member_count", "updated_at"]
    search_fields = ["name", "description"]
    readonly_fields = ["created_at", "updated_at"]
    inlines = [GroupMembershipInline]

    def get_queryset(self, request):
        return super().get_queryset(request).prefetch_related("memberships__component")

    @admin.display(description="Status")
    def computed_status(self, obj):
        return status_badge(group_status(obj))

    @admin.display(description="Components")
    def member_count(self, obj):
        return len(obj.memberships.all())
