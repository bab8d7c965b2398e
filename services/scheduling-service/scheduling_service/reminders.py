import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update

from .clock import as_utc, utcnow
from .collaborators import JobQueue, Notifier
from .errors import NotFoundError, ValidationError
from .models import ACTIVE_STATUSES, Booking, BookingStatus, Reminder, ReminderKind

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "BOOKING_REMINDER"
NOTIFICATION_CHANNEL = "PUSH"

# kind -> (job name, lead time, label shown to people)
REMINDER_PLAN = {
    ReminderKind.TWENTY_FOUR_HOURS: ("reminder-24h", timedelta(hours=24), "24 hours"),
    ReminderKind.ONE_HOUR: ("reminder-1h", timedelta(hours=1), "1 hour"),
}

JOB_NAMES = tuple(job_name for job_name, _, _ in REMINDER_PLAN.values())

REGENERATABLE_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.EN_ROUTE.value)


def reminder_label(kind: str) -> str:
    return REMINDER_PLAN[ReminderKind(kind)][2]


class ReminderScheduler:
    def __init__(self, session_factory, queue: JobQueue, notifier: Notifier | None = None, now_fn=utcnow):
        self.session_factory = session_factory
        self.queue = queue
        self.notifier = notifier
        self.now_fn = now_fn

    async def create_reminders(self, booking_id: str, scheduled_at: datetime) -> list[Reminder]:
        """
        Persist and enqueue the 24h and 1h reminders for a booking.

        Lead times that already passed are skipped silently.
        """
        now = self.now_fn()
        scheduled_at = as_utc(scheduled_at)

        async with self.session_factory() as db:
            created = []
            for kind, (job_name, lead, _) in REMINDER_PLAN.items():
                fire_at = scheduled_at - lead
                if fire_at <= now:
                    logger.info("booking %s: %s reminder time already passed, skipping", booking_id, job_name)
                    continue
                created.append((Reminder(booking_id=booking_id, kind=kind.value, scheduled_for=fire_at), job_name))
            if not created:
                return []

            db.add_all([r for r, _ in created])
            # rows first, so a job can never fire for a reminder that isn't there yet
            await db.commit()

            scheduled = []
            for reminder, job_name in created:
                delay = (as_utc(reminder.scheduled_for) - now).total_seconds()
                try:
                    job_id = await self.queue.enqueue(
                        job_name,
                        {"bookingId": booking_id, "reminderId": reminder.id},
                        delay,
                    )
                except Exception as e:
                    logger.error("booking %s: could not enqueue %s: %s", booking_id, job_name, e)
                    await db.delete(reminder)
                    await db.commit()
                    continue
                # commit each handle as soon as it exists
                reminder.job_id = job_id
                await db.commit()
                scheduled.append(reminder)

        logger.info("booking %s: %d reminders scheduled", booking_id, len(scheduled))
        return scheduled

    async def cancel_reminders(self, booking_id: str) -> int:
        async with self.session_factory() as db:
            res = await db.execute(
                select(Reminder).where(Reminder.booking_id == booking_id, Reminder.sent.is_(False))
            )
            reminders = list(res.scalars().all())

            for reminder in reminders:
                if reminder.job_id:
                    try:
                        if not await self.queue.remove(reminder.job_id):
                            logger.info("reminder job %s was already gone", reminder.job_id)
                    except Exception as e:
                        logger.warning("could not remove reminder job %s: %s", reminder.job_id, e)
                await db.delete(reminder)

            await db.commit()

        if reminders:
            logger.info("booking %s: %d reminders cancelled", booking_id, len(reminders))
        return len(reminders)

    async def regenerate_reminders(self, booking_id: str) -> list[Reminder]:
        async with self.session_factory() as db:
            booking = await db.get(Booking, booking_id)
            if not booking:
                raise NotFoundError(f"Booking {booking_id} not found")
            if booking.status not in REGENERATABLE_STATUSES:
                raise ValidationError(
                    f"Reminders can only be regenerated for confirmed bookings (status is {booking.status})"
                )
            scheduled_at = booking.scheduled_at

        await self.cancel_reminders(booking_id)
        return await self.create_reminders(booking_id, scheduled_at)

    async def handle_reminder_job(self, payload: dict) -> bool:
        """Job handler for reminder-24h / reminder-1h. Returns True if notifications went out."""
        reminder_id = payload.get("reminderId")
        booking_id = payload.get("bookingId")

        async with self.session_factory() as db:
            reminder = await db.get(Reminder, reminder_id) if reminder_id else None
            if not reminder:
                logger.warning("reminder %s not found, skipping", reminder_id)
                return False
            if reminder.sent:
                logger.warning("reminder %s already sent, skipping", reminder_id)
                return False

            booking = await db.get(Booking, reminder.booking_id)
            if not booking:
                logger.warning("booking %s not found, skipping reminder %s", booking_id, reminder_id)
                return False
            if booking.status not in ACTIVE_STATUSES:
                logger.info("booking %s is %s, skipping reminder %s", booking.id, booking.status, reminder_id)
                return False

            # conditional update so two concurrent deliveries can't both claim it
            res = await db.execute(
                update(Reminder)
                .where(Reminder.id == reminder.id, Reminder.sent.is_(False))
                .values(sent=True)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            if res.rowcount != 1:
                logger.warning("reminder %s claimed by another delivery, skipping", reminder_id)
                return False

        label = reminder_label(reminder.kind)
        when = as_utc(booking.scheduled_at).strftime("%Y-%m-%d %H:%M UTC")
        service = booking.service_type.replace("_", " ").lower()
        metadata = {"bookingId": booking.id, "reminderType": label}

        parties = (
            ("requester", booking.requester_id, "your provider"),
            ("provider", booking.provider_id, "your client"),
        )
        for party, user_id, other in parties:
            await self._notify(
                party,
                user_id,
                booking.id,
                f"Appointment in {label}",
                f"Your {service} appointment with {other} is in {label} ({when}).",
                metadata,
            )

        logger.info("reminder %s (%s) sent for booking %s", reminder.id, label, booking.id)
        return True

    async def _notify(self, party: str, user_id: str, booking_id: str, title: str, body: str, metadata: dict):
        if self.notifier is None:
            return
        try:
            await self.notifier.send(user_id, NOTIFICATION_TYPE, title, body, NOTIFICATION_CHANNEL, metadata)
        except Exception as e:
            logger.error("failed to send %s reminder for booking %s: %s", party, booking_id, e)
