from unittest.mock import patch

import pytest

from apps.notify.drivers import DeliveryResult
from apps.notify.models import NotificationChannel, Subscriber


@pytest.fixture
def channel():
    return NotificationChannel.objects.create(
        name="hook", driver="generic", config={"endpoint": "https://hook.example.local"}
    )


@pytest.mark.django_db
class TestNotificationChannelAdmin:
    def test_changelist_loads(self, admin_client, channel):
        response = admin_client.get("/admin/notify/notificationchannel/")
        assert response.status_code == 200
        assert b"enabled" in response.content

    def test_send_test_action(self, admin_client, channel):
        with patch(
            "apps.notify.drivers.generic.GenericNotifyDriver.deliver",
            return_value=DeliveryResult(success=True),
        ) as mock_deliver:
            response = admin_client.get(
                f"/admin/notify/notificationchannel/{channel.pk}/actions/send_test/", follow=True
            )

        assert response.status_code == 200
        assert b"Test notification sent" in response.content
        message = mock_deliver.call_args[0][0]
        assert message.subject == "[Incident] Test notification"

    def test_send_test_unknown_driver(self, admin_client):
        channel = NotificationChannel.objects.create(name="pager", driver="pager")
        response = admin_client.get(
            f"/admin/notify/notificationchannel/{channel.pk}/actions/send_test/", follow=True
        )
        assert b"Unknown driver" in response.content


@pytest.mark.django_db
class TestSubscriberAdmin:
    def test_deactivate_selected(self, admin_client):
        sub = Subscriber.objects.create(address="a@example.local")

        response = admin_client.post(
            "/admin/notify/subscriber/",
            {"action": "deactivate_selected", "_selected_action": [sub.pk]},
        )

        assert response.status_code == 302
        sub.refresh_from_db()
        assert not sub.is_active
