"""Admin configuration for notify models."""

from django.contrib import admin, messages
from django.db import models as db_models
from django_json_widget.widgets import JSONEditorWidget
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.notify.drivers import DRIVER_REGISTRY, get_driver, is_notify_enabled
from apps.notify.models import NotificationChannel, Subscriber
from apps.notify.services import IncidentNotifier

SAMPLE_EVENT = {
    "id": None,
    "title": "Test notification",
    "description": "This is a test message from the status page console.",
    "status": "investigating",
    "impact": "none",
}


@admin.register(NotificationChannel)
class NotificationChannelAdmin(DjangoObjectActions, admin.ModelAdmin):
    list_display = ["name", "driver", "driver_state", "is_active", "updated_at"]
    formfield_overrides = {db_models.JSONField: {"widget": JSONEditorWidget}}
    list_filter = ["driver", "is_active"]
    search_fields = ["name", "description"]
    readonly_fields = ["created_at", "updated_at"]
    change_actions = ["send_test"]

    fieldsets = [
        (None, {"fields": ["name", "driver", "is_active", "description"]}),
        ("Configuration", {"fields": ["config"]}),
        ("Timestamps", {"fields": ["created_at", "updated_at"], "classes": ["collapse"]}),
    ]

    @admin.display(description="Driver")
    def driver_state(self, obj):
        if obj.driver not in DRIVER_REGISTRY:
            return "unknown"
        return "enabled" if is_notify_enabled(obj.driver) else "skipped"

    @object_action(label="Send test", description="Deliver a sample notification on this channel")
    def send_test(self, request, obj):
        driver = get_driver(obj.driver)
        if driver is None:
            self.message_user(request, f"Unknown driver '{obj.driver}'.", level=messages.ERROR)
            return

        notifier = IncidentNotifier()
        outcome = driver.deliver(notifier.build_message(SAMPLE_EVENT), notifier.channel_config(obj))
        if outcome.skipped:
            self.message_user(
                request, f"Skipped: {outcome.metadata.get('reason')}.", level=messages.WARNING
            )
        elif outcome.success:
            self.message_user(request, f"Test notification sent on '{obj.name}'.")
        else:
            self.message_user(request, f"Delivery failed: {outcome.error}", level=messages.ERROR)


@admin.register(Subscriber)
class SubscriberAdmin(admin.ModelAdmin):
    list_display = ["address", "type", "is_active", "created_at"]
    list_filter = ["type", "is_active"]
    search_fields = ["address"]
    readonly_fields = ["created_at", "updated_at"]
    actions = ["deactivate_selected"]

    @admin.action(description="Unsubscribe selected")
    def deactivate_selected(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"{updated} subscriber(s) deactivated.")
