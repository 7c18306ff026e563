"""
Notify drivers, keyed by the ``NotificationChannel.driver`` value.

Drivers can be switched off without touching channel rows: ``NOTIFY_SKIP``
lists driver names to skip and ``NOTIFY_SKIP_ALL`` skips every driver.
"""

from typing import Optional

from django.conf import settings

from apps.notify.drivers.base import (
    BaseNotifyDriver,
    DeliveryResult,
    MessageAction,
    NotificationMessage,
)
from apps.notify.drivers.email import EmailNotifyDriver
from apps.notify.drivers.generic import GenericNotifyDriver

__all__ = [
    "BaseNotifyDriver",
    "DeliveryResult",
    "MessageAction",
    "NotificationMessage",
    "DRIVER_REGISTRY",
    "get_driver",
    "is_notify_enabled",
]

DRIVER_REGISTRY: dict[str, type[BaseNotifyDriver]] = {
    EmailNotifyDriver.name: EmailNotifyDriver,
    GenericNotifyDriver.name: GenericNotifyDriver,
}


def is_notify_enabled(driver_name: str) -> bool:
    if getattr(settings, "NOTIFY_SKIP_ALL", False):
        return False
    return driver_name not in getattr(settings, "NOTIFY_SKIP", [])


def get_driver(driver_name: str) -> Optional[BaseNotifyDriver]:
    """Instantiate a registered driver, or None for unknown names."""
    driver_class = DRIVER_REGISTRY.get(driver_name)
    return driver_class() if driver_class else None
