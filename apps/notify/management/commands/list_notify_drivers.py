"""
List notify drivers, the channels using them and their config keys.

Usage:
    python manage.py list_notify_drivers
    python manage.py list_notify_drivers --verbose
"""

from django.core.management.base import BaseCommand
from django.db.models import Count

from apps.notify.drivers import DRIVER_REGISTRY, is_notify_enabled
from apps.notify.models import NotificationChannel, Subscriber


class Command(BaseCommand):
    help = "List notification drivers and the channels configured for them"

    def add_arguments(self, parser):
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Show required and optional config keys",
        )

    def handle(self, *args, **options):
        channel_counts = dict(
            NotificationChannel.objects.filter(is_active=True)
            .values_list("driver")
            .annotate(n=Count("id"))
        )

        self.stdout.write(self.style.SUCCESS("Notification drivers"))
        self.stdout.write("-" * 60)

        for name, driver_class in DRIVER_REGISTRY.items():
            state = "" if is_notify_enabled(name) else " (skipped)"
            self.stdout.write(f"\n{self.style.WARNING(name)}{state}")
            self.stdout.write(f"  {driver_class.description}")
            self.stdout.write(f"  Active channels: {channel_counts.get(name, 0)}")

            if options["verbose"]:
                required = ", ".join(driver_class.required_config) or "none"
                self.stdout.write(f"  Required config: {required}")
                if driver_class.optional_config:
                    self.stdout.write(
                        f"  Optional config: {', '.join(driver_class.optional_config)}"
                    )

        orphaned = NotificationChannel.objects.filter(is_active=True).exclude(
            driver__in=list(DRIVER_REGISTRY)
        )
        for channel in orphaned:
            self.stdout.write(
                self.style.ERROR(f"\nChannel '{channel.name}' uses unknown driver '{channel.driver}'")
            )

        self.stdout.write("\n" + "-" * 60)
        subscribers = Subscriber.objects.filter(is_active=True).count()
        self.stdout.write(f"Active subscribers: {subscribers}")
