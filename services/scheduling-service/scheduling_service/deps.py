from shared.rabbitmq import RabbitPublisher

from .bookings import BookingService
from .clients import MessagingClient, ProfileClient
from .config import RABBIT_URL
from .db import SessionLocal
from .delayed_queue import DelayedQueue
from .notifications import NotificationClient
from .redis_client import redis_client
from .reminders import ReminderScheduler
from .validator import SlotValidator

publisher = RabbitPublisher(RABBIT_URL)
queue = DelayedQueue(redis_client)

reminder_scheduler = ReminderScheduler(SessionLocal, queue, notifier=NotificationClient(publisher))

booking_service = BookingService(
    SessionLocal,
    validator=SlotValidator(),
    profiles=ProfileClient(redis_client),
    messaging=MessagingClient(redis_client),
    reminders=reminder_scheduler,
    events=publisher,
)


async def get_db():
    async with SessionLocal() as session:
        yield session


def get_booking_service() -> BookingService:
    return booking_service
