"""
Notification models: delivery channels and incident subscribers.
"""

from django.db import models


class NotificationChannel(models.Model):
    """
    Configuration for a notification channel (e.g., SMTP relay, webhook).

    Stores the driver type and configuration needed to send notifications.
    Email channels deliver to every active email Subscriber unless the config
    lists explicit `to_addresses`.
    """

    name = models.CharField(
        max_length=100,
        unique=True,
        help_text="Unique name for this channel (e.g., 'subscribers-email', 'ops-webhook').",
    )
    driver = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Driver type ('email' or 'generic').",
    )
    config = models.JSONField(
        default=dict,
        blank=True,
        help_text="Driver-specific configuration (e.g., SMTP host, endpoint URL).",
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether this channel is active and can receive notifications.",
    )
    description = models.TextField(
        blank=True,
        default="",
        help_text="Description of this channel's purpose.",
    )

    # Timestamps
    created_at = models.DateTimeField(
        auto_now_add=True,
    )
    updated_at = models.DateTimeField(
        auto_now=True,
    )

    class Meta:
        ordering = ["name"]

    def __str__(self):
        status = "active" if self.is_active else "inactive"
        return f"{self.name} ({self.driver}) [{status}]"


class SubscriberType(models.TextChoices):
    EMAIL = "email", "Email"


class Subscriber(models.Model):
    """Someone who asked to be told about new incidents."""

    type = models.CharField(
        max_length=20,
        choices=SubscriberType.choices,
        default=SubscriberType.EMAIL,
        db_index=True,
    )
    address = models.CharField(
        max_length=255,
        help_text="Delivery address for this subscriber type (e.g., an email address).",
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
    )

    # Timestamps
    created_at = models.DateTimeField(
        auto_now_add=True,
    )
    updated_at = models.DateTimeField(
        auto_now=True,
    )

    class Meta:
        ordering = ["address"]
        constraints = [
            models.UniqueConstraint(
                fields=["type", "address"],
                name="unique_subscriber_address",
            ),
        ]

    def __str__(self):
        return f"{self.address} ({self.type})"
