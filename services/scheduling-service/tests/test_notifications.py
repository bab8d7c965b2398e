import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from scheduling_service.errors import DependencyError
from scheduling_service.notifications import NotificationClient


def make_publisher(enabled=True):
    publisher = MagicMock()
    publisher.enabled = enabled
    publisher.publish = AsyncMock()
    return publisher


class TestNotificationClient:
    @pytest.mark.asyncio
    async def test_publishes_event(self):
        publisher = make_publisher()
        client = NotificationClient(publisher)

        await client.send("u1", "BOOKING_REMINDER", "Appointment in 1 hour", "body", "PUSH", {"bookingId": "b1"})

        routing_key, body = publisher.publish.await_args.args
        assert routing_key == "notification.requested"
        assert publisher.publish.await_args.kwargs == {"raise_on_error": True}
        event = json.loads(body)
        assert event["event_type"] == "notification.requested"
        assert event["data"]["user_id"] == "u1"
        assert event["data"]["metadata"] == {"bookingId": "b1"}

    @pytest.mark.asyncio
    async def test_publish_failure_becomes_dependency_error(self):
        publisher = make_publisher()
        publisher.publish.side_effect = ConnectionError("broker gone")

        with pytest.raises(DependencyError):
            await NotificationClient(publisher).send("u1", "T", "t", "b", "PUSH")

    @pytest.mark.asyncio
    async def test_disabled_bus_is_a_no_op(self):
        publisher = make_publisher(enabled=False)
        await NotificationClient(publisher).send("u1", "T", "t", "b", "PUSH")
        publisher.publish.assert_not_awaited()
