from unittest.mock import MagicMock, patch

from django.test import TestCase, override_settings

from apps.notify.drivers import DeliveryResult
from apps.notify.models import NotificationChannel, Subscriber
from apps.notify.services import IncidentNotifier, incident_url

EVENT = {
    "id": 3,
    "title": "API down",
    "description": "No responses",
    "status": "investigating",
    "impact": "major",
}


def _driver(*outcomes):
    """A driver whose deliver() returns the given results in turn."""
    driver = MagicMock()
    driver.deliver.side_effect = list(outcomes)
    return driver


class IncidentUrlTests(TestCase):
    @override_settings(STATUSPAGE_PUBLIC_URL="https://status.example.local/")
    def test_builds_link(self):
        self.assertEqual(incident_url(3), "https://status.example.local/incidents/3")

    @override_settings(STATUSPAGE_PUBLIC_URL="")
    def test_no_base_url(self):
        self.assertIsNone(incident_url(3))


class BuildMessageTests(TestCase):
    @override_settings(STATUSPAGE_PUBLIC_URL="https://status.example.local")
    def test_message_fields(self):
        msg = IncidentNotifier().build_message(EVENT)

        self.assertEqual(msg.subject, "[Incident] API down")
        self.assertEqual(msg.greeting, "Hello,")
        self.assertEqual(
            msg.lines,
            [
                "A new incident has been created: API down",
                "",
                "No responses",
                "",
                "Status: investigating",
                "Impact: major",
            ],
        )
        self.assertEqual(msg.severity, "critical")
        self.assertEqual(msg.action.text, "View Incident")
        self.assertEqual(msg.action.url, "https://status.example.local/incidents/3")
        self.assertEqual(msg.incident, EVENT)

    @override_settings(STATUSPAGE_PUBLIC_URL="")
    def test_without_description_or_url(self):
        msg = IncidentNotifier().build_message({**EVENT, "impact": "none", "description": None})

        self.assertEqual(msg.severity, "info")
        self.assertIsNone(msg.action)
        self.assertEqual(msg.lines[1:], ["", "Status: investigating", "Impact: none"])


class ChannelConfigTests(TestCase):
    def test_email_channel_uses_active_subscribers(self):
        Subscriber.objects.create(address="b@example.local")
        Subscriber.objects.create(address="a@example.local")
        Subscriber.objects.create(address="gone@example.local", is_active=False)
        channel = NotificationChannel.objects.create(
            name="subscribers", driver="email", config={"smtp_host": "h", "from_address": "f"}
        )

        config = IncidentNotifier().channel_config(channel)

        self.assertEqual(config["to_addresses"], ["a@example.local", "b@example.local"])
        self.assertEqual(channel.config, {"smtp_host": "h", "from_address": "f"})

    def test_explicit_recipients_win(self):
        Subscriber.objects.create(address="a@example.local")
        channel = NotificationChannel.objects.create(
            name="oncall", driver="email", config={"to_addresses": ["oncall@example.local"]}
        )

        config = IncidentNotifier().channel_config(channel)

        self.assertEqual(config["to_addresses"], ["oncall@example.local"])

    def test_generic_channel_untouched(self):
        channel = NotificationChannel.objects.create(
            name="hook", driver="generic", config={"endpoint": "https://hook.local"}
        )
        self.assertEqual(
            IncidentNotifier().channel_config(channel), {"endpoint": "https://hook.local"}
        )


class IncidentCreatedDeliveryTests(TestCase):
    def setUp(self):
        NotificationChannel.objects.create(name="hook", driver="generic", config={})
        NotificationChannel.objects.create(name="mail", driver="email", config={})
        NotificationChannel.objects.create(name="off", driver="generic", is_active=False)

    @patch("apps.notify.services.get_driver")
    def test_sends_to_active_channels(self, mock_get_driver):
        driver = _driver(DeliveryResult(success=True), DeliveryResult(success=True))
        mock_get_driver.return_value = driver

        result = IncidentNotifier().incident_created(EVENT)

        self.assertEqual(result.sent, 2)
        self.assertEqual(result.failed, 0)
        self.assertEqual(driver.deliver.call_count, 2)

    @patch("apps.notify.services.get_driver")
    def test_failures_are_collected(self, mock_get_driver):
        # Channels are iterated by name: "hook" then "mail".
        mock_get_driver.return_value = _driver(
            DeliveryResult(success=True), DeliveryResult.failed("smtp refused")
        )

        result = IncidentNotifier().incident_created(EVENT)

        self.assertEqual(result.sent, 1)
        self.assertEqual(result.failed, 1)
        self.assertEqual(result.errors, ["mail: smtp refused"])

    @patch("apps.notify.services.get_driver")
    def test_driver_skip_is_counted(self, mock_get_driver):
        mock_get_driver.return_value = _driver(
            DeliveryResult.skip("channel disabled"), DeliveryResult(success=True)
        )

        result = IncidentNotifier().incident_created(EVENT)

        self.assertEqual(result.to_dict()["skipped"], 1)
        self.assertEqual(result.sent, 1)

    @override_settings(NOTIFY_SKIP=["email"])
    @patch("apps.notify.services.get_driver")
    def test_skipped_driver(self, mock_get_driver):
        mock_get_driver.return_value = _driver(DeliveryResult(success=True))

        result = IncidentNotifier().incident_created(EVENT)

        self.assertEqual(result.skipped, 1)
        self.assertEqual(result.sent, 1)
        mock_get_driver.assert_called_once_with("generic")

    def test_unknown_driver(self):
        NotificationChannel.objects.create(name="pager", driver="pager")

        with self.settings(NOTIFY_SKIP=["email", "generic"]):
            result = IncidentNotifier().incident_created(EVENT)

        self.assertEqual(result.failed, 1)
        self.assertEqual(result.skipped, 2)
        self.assertIn("unknown driver 'pager'", result.errors[0])

    @override_settings(NOTIFY_SKIP_ALL=True)
    def test_skip_all(self):
        result = IncidentNotifier().incident_created(EVENT)
        self.assertEqual(result.skipped, 2)
        self.assertEqual(result.sent, 0)

    def test_real_drivers_with_empty_config(self):
        result = IncidentNotifier().incident_created(EVENT)

        self.assertEqual(result.sent, 0)
        self.assertEqual(result.failed, 1)
        self.assertEqual(result.skipped, 1)
