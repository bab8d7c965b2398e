import logging

from shared.events import build_event, to_json
from shared.rabbitmq import RabbitPublisher

from .config import SERVICE_NAME
from .errors import DependencyError

logger = logging.getLogger(__name__)

NOTIFICATION_ROUTING_KEY = "notification.requested"


class NotificationClient:
    """Hands notifications to the notification service over the event bus."""

    def __init__(self, publisher: RabbitPublisher):
        self.publisher = publisher

    async def send(
        self,
        user_id: str,
        type: str,
        title: str,
        body: str,
        channel: str,
        metadata: dict | None = None,
    ) -> None:
        if not self.publisher.enabled:
            logger.warning("event bus disabled, dropping %s notification for %s", type, user_id)
            return

        event = build_event(
            NOTIFICATION_ROUTING_KEY,
            {
                "user_id": user_id,
                "type": type,
                "title": title,
                "body": body,
                "channel": channel,
                "metadata": metadata or {},
            },
            source=SERVICE_NAME,
        )
        try:
            await self.publisher.publish(NOTIFICATION_ROUTING_KEY, to_json(event), raise_on_error=True)
        except Exception as e:
            raise DependencyError(f"Notification for {user_id} could not be queued: {e}")
