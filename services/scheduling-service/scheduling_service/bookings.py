import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import advisory_xact_lock
from shared.events import build_event, to_json

from .availability import get_settings
from .clock import as_utc, utcnow
from .collaborators import EventPublisher, Messaging, ProfileDirectory
from .config import SERVICE_NAME
from .errors import DependencyError, NotFoundError, OwnershipError, TransitionError, ValidationError
from .models import Booking, BookingStatus, BookingTracking
from .reminders import ReminderScheduler
from .validator import SlotValidator, fallback_conflict_check

logger = logging.getLogger(__name__)

S = BookingStatus

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.EN_ROUTE, S.IN_PROGRESS, S.CANCELLED}),
    S.EN_ROUTE: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

REASON_REQUIRED_STATUSES = frozenset({S.CONFIRMED, S.EN_ROUTE, S.IN_PROGRESS})
RESCHEDULABLE_STATUSES = frozenset({S.PENDING, S.CONFIRMED})

DEFAULT_REJECT_REASON = "Rejected by practitioner"

SYSTEM_MESSAGES = {
    S.CONFIRMED: "The booking has been confirmed.",
    S.EN_ROUTE: "Your provider is on the way.",
    S.IN_PROGRESS: "The visit has started.",
    S.COMPLETED: "The visit has been completed.",
    S.CANCELLED: "The booking has been cancelled.",
}


def allowed_transitions(status: str) -> frozenset[BookingStatus]:
    return ALLOWED_TRANSITIONS[BookingStatus(status)]


def is_terminal(status: str) -> bool:
    return not allowed_transitions(status)


def assert_transition(current: str, target: BookingStatus) -> None:
    if target not in allowed_transitions(current):
        raise TransitionError(BookingStatus(current).value, target.value)


@dataclass
class NewBooking:
    provider_id: str
    service_type: str
    scheduled_at: datetime
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    notes: str | None = None


class BookingService:
    """
    Booking lifecycle.

    Every operation commits its own state change first; collaborator side
    effects (thread, reminders, system messages, events) run afterwards and
    only ever log on failure. Any collaborator may be None, in which case its
    side effect is skipped. Without a validator, create/reschedule fall back
    to the +/-1h check.
    """

    def __init__(
        self,
        session_factory,
        validator: SlotValidator | None = None,
        profiles: ProfileDirectory | None = None,
        messaging: Messaging | None = None,
        reminders: ReminderScheduler | None = None,
        events: EventPublisher | None = None,
        now_fn=utcnow,
    ):
        self.session_factory = session_factory
        self.validator = validator
        self.profiles = profiles
        self.messaging = messaging
        self.reminders = reminders
        self.events = events
        self.now_fn = now_fn

    # -------- helpers --------

    async def _load(self, db: AsyncSession, booking_id: str) -> Booking:
        res = await db.execute(select(Booking).where(Booking.id == booking_id).with_for_update())
        booking = res.scalar_one_or_none()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    def _require_provider(booking: Booking, actor_id: str):
        if booking.provider_id != actor_id:
            raise OwnershipError("Only the assigned practitioner can perform this action", expected="provider")

    @staticmethod
    def _require_participant(booking: Booking, actor_id: str):
        if actor_id not in (booking.requester_id, booking.provider_id):
            raise OwnershipError("You are not a participant in this booking", expected="participant")

    async def _check_slot(
        self,
        db: AsyncSession,
        provider_id: str,
        instant: datetime,
        exclude_booking_id: str | None = None,
        duration_minutes: int | None = None,
    ):
        kwargs = {"exclude_booking_id": exclude_booking_id, "duration_minutes": duration_minutes}
        if self.validator is not None:
            await self.validator.validate(db, provider_id, instant, **kwargs)
        else:
            await fallback_conflict_check(db, provider_id, instant, **kwargs)

    async def _best_effort(self, what: str, booking_id: str, func, *args):
        try:
            await func(*args)
        except Exception as e:
            logger.warning("booking %s: %s failed: %s", booking_id, what, e)

    async def _after_transition(self, booking: Booking, event_type: str, system_message: str | None = None):
        if system_message and self.messaging is not None:
            await self._best_effort("system message", booking.id, self.messaging.post_system_message, booking.id, system_message)

        if self.events is not None:
            event = build_event(
                event_type,
                {
                    "booking_id": booking.id,
                    "requester_id": booking.requester_id,
                    "provider_id": booking.provider_id,
                    "status": booking.status,
                    "scheduled_at": as_utc(booking.scheduled_at).isoformat(),
                },
                source=SERVICE_NAME,
            )
            await self._best_effort("event publish", booking.id, self.events.publish, event_type, to_json(event))

    # -------- operations --------

    async def get_booking(self, booking_id: str, actor_id: str) -> Booking:
        async with self.session_factory() as db:
            booking = await db.get(Booking, booking_id)
            if not booking:
                raise NotFoundError(f"Booking {booking_id} not found")
            self._require_participant(booking, actor_id)
            return booking

    async def create(self, requester_id: str, data: NewBooking) -> Booking:
        scheduled_at = as_utc(data.scheduled_at)
        if scheduled_at <= self.now_fn():
            raise ValidationError("Scheduled time must be in the future")

        if self.profiles is not None:
            profile = await self.profiles.get_provider_profile(data.provider_id)
            if profile is None:
                raise NotFoundError(f"Practitioner {data.provider_id} not found")
            if not profile.verified:
                raise ValidationError("Practitioner is not verified")
            if not profile.available:
                raise ValidationError("Practitioner is not currently available")

        if requester_id == data.provider_id:
            raise ValidationError("You cannot book an appointment with yourself")

        async with self.session_factory() as db:
            await advisory_xact_lock(db, f"provider:{data.provider_id}")
            await self._check_slot(db, data.provider_id, scheduled_at)

            settings = await get_settings(db, data.provider_id)
            booking = Booking(
                requester_id=requester_id,
                provider_id=data.provider_id,
                service_type=data.service_type,
                status=S.PENDING.value,
                scheduled_at=scheduled_at,
                scheduled_end_time=scheduled_at + timedelta(minutes=settings.slot_duration_minutes),
                address=data.address,
                latitude=data.latitude,
                longitude=data.longitude,
                notes=data.notes,
            )
            db.add(booking)
            await db.commit()

        logger.info("booking %s created for provider %s at %s", booking.id, booking.provider_id, scheduled_at.isoformat())
        await self._after_transition(booking, "booking.created")
        return booking

    async def accept(self, booking_id: str, actor_id: str) -> Booking:
        async with self.session_factory() as db:
            booking = await self._load(db, booking_id)
            self._require_provider(booking, actor_id)
            assert_transition(booking.status, S.CONFIRMED)

            booking.status = S.CONFIRMED.value
            await db.commit()

        logger.info("booking %s: PENDING -> CONFIRMED", booking_id)

        if self.messaging is not None:
            await self._best_effort(
                "thread creation",
                booking_id,
                self.messaging.create_thread,
                booking.id,
                booking.requester_id,
                booking.provider_id,
            )
        if self.reminders is not None:
            await self._best_effort(
                "reminder creation", booking_id, self.reminders.create_reminders, booking.id, booking.scheduled_at
            )

        await self._after_transition(booking, "booking.confirmed", SYSTEM_MESSAGES[S.CONFIRMED])
        return booking

    async def reject(self, booking_id: str, actor_id: str, reason: str | None = None) -> Booking:
        async with self.session_factory() as db:
            booking = await self._load(db, booking_id)
            self._require_provider(booking, actor_id)
            # reject is the provider declining a request, not a general cancel
            if booking.status != S.PENDING.value:
                raise TransitionError(booking.status, S.CANCELLED.value, "Only pending bookings can be rejected")

            booking.status = S.CANCELLED.value
            booking.cancelled_at = self.now_fn()
            booking.cancelled_by = actor_id
            booking.cancellation_reason = (reason or "").strip() or DEFAULT_REJECT_REASON
            await db.commit()

        logger.info("booking %s: PENDING -> CANCELLED (rejected)", booking_id)
        await self._after_transition(booking, "booking.rejected")
        return booking

    async def en_route(self, booking_id: str, actor_id: str) -> Booking:
        async with self.session_factory() as db:
            booking = await self._load(db, booking_id)
            self._require_provider(booking, actor_id)
            assert_transition(booking.status, S.EN_ROUTE)

            booking.status = S.EN_ROUTE.value
            await db.commit()

        logger.info("booking %s: CONFIRMED -> EN_ROUTE", booking_id)
        await self._after_transition(booking, "booking.en_route", SYSTEM_MESSAGES[S.EN_ROUTE])
        return booking

    async def start_visit(self, booking_id: str, actor_id: str) -> Booking:
        async with self.session_factory() as db:
            booking = await self._load(db, booking_id)
            self._require_provider(booking, actor_id)
            previous = booking.status
            assert_transition(previous, S.IN_PROGRESS)

            now = self.now_fn()
            booking.status = S.IN_PROGRESS.value
            booking.started_at = now

            tracking = await db.get(BookingTracking, booking.id)
            if tracking is None:
                db.add(
                    BookingTracking(
                        booking_id=booking.id,
                        latitude=booking.latitude,
                        longitude=booking.longitude,
                        started_at=now,
                    )
                )
            else:
                tracking.started_at = now
            await db.commit()

        logger.info("booking %s: %s -> IN_PROGRESS", booking_id, previous)
        await self._after_transition(booking, "booking.started", SYSTEM_MESSAGES[S.IN_PROGRESS])
        return booking

    async def complete(self, booking_id: str, actor_id: str) -> Booking:
        async with self.session_factory() as db:
            booking = await self._load(db, booking_id)
            self._require_provider(booking, actor_id)
            assert_transition(booking.status, S.COMPLETED)

            booking.status = S.COMPLETED.value
            booking.completed_at = self.now_fn()
            await db.commit()

        logger.info("booking %s: IN_PROGRESS -> COMPLETED", booking_id)
        await self._after_transition(booking, "booking.completed", SYSTEM_MESSAGES[S.COMPLETED])
        return booking

    async def cancel(self, booking_id: str, actor_id: str, reason: str | None = None) -> Booking:
        reason = (reason or "").strip() or None

        async with self.session_factory() as db:
            booking = await self._load(db, booking_id)
            self._require_participant(booking, actor_id)
            previous = booking.status
            if is_terminal(previous):
                raise TransitionError(
                    previous, S.CANCELLED.value, f"Booking is already {previous.lower()} and cannot be cancelled"
                )
            assert_transition(previous, S.CANCELLED)
            if BookingStatus(previous) in REASON_REQUIRED_STATUSES and not reason:
                raise ValidationError("Cancellation reason required for confirmed or in-progress bookings")

            booking.status = S.CANCELLED.value
            booking.cancelled_at = self.now_fn()
            booking.cancelled_by = actor_id
            booking.cancellation_reason = reason
            await db.commit()

        logger.info("booking %s: %s -> CANCELLED by %s", booking_id, previous, actor_id)

        if self.reminders is not None:
            await self._best_effort("reminder cancellation", booking_id, self.reminders.cancel_reminders, booking.id)

        # no thread exists before the booking was accepted
        message = SYSTEM_MESSAGES[S.CANCELLED] if previous != S.PENDING.value else None
        await self._after_transition(booking, "booking.cancelled", message)
        return booking

    async def reschedule(
        self,
        booking_id: str,
        actor_id: str,
        new_scheduled_at: datetime,
        reason: str | None = None,
    ) -> Booking:
        """
        Move a pending or confirmed booking to a new instant with the same provider.

        The booking keeps its original duration. Existing reminders are left
        alone; call regenerate_reminders to retime them.
        """
        new_at = as_utc(new_scheduled_at)

        async with self.session_factory() as db:
            booking = await self._load(db, booking_id)
            self._require_participant(booking, actor_id)
            if BookingStatus(booking.status) not in RESCHEDULABLE_STATUSES:
                raise TransitionError(
                    booking.status, "RESCHEDULE", "Only pending or confirmed bookings can be rescheduled"
                )

            now = self.now_fn()
            if new_at <= now:
                raise ValidationError("New scheduled time must be in the future")

            await advisory_xact_lock(db, f"provider:{booking.provider_id}")

            old_start = as_utc(booking.scheduled_at)
            old_end = as_utc(booking.scheduled_end_time)
            if old_end is None:
                settings = await get_settings(db, booking.provider_id)
                old_end = old_start + timedelta(minutes=settings.slot_duration_minutes)
            duration_minutes = int((old_end - old_start).total_seconds() // 60)

            # validate the interval the booking will actually occupy
            await self._check_slot(
                db,
                booking.provider_id,
                new_at,
                exclude_booking_id=booking.id,
                duration_minutes=duration_minutes,
            )

            booking.rescheduled_from = old_start
            booking.scheduled_at = new_at
            booking.scheduled_end_time = new_at + timedelta(minutes=duration_minutes)
            booking.rescheduled_at = now
            booking.rescheduled_by = actor_id
            booking.reschedule_reason = (reason or "").strip() or None
            await db.commit()

        logger.info(
            "booking %s rescheduled from %s to %s; reminders not regenerated",
            booking_id,
            old_start.isoformat(),
            new_at.isoformat(),
        )
        message = None
        if booking.status == S.CONFIRMED.value:
            message = f"The booking has been rescheduled to {new_at.strftime('%Y-%m-%d %H:%M UTC')}."
        await self._after_transition(booking, "booking.rescheduled", message)
        return booking

    async def regenerate_reminders(self, booking_id: str, actor_id: str):
        if self.reminders is None:
            raise DependencyError("Reminder scheduling is not configured")

        async with self.session_factory() as db:
            booking = await db.get(Booking, booking_id)
            if not booking:
                raise NotFoundError(f"Booking {booking_id} not found")
            self._require_participant(booking, actor_id)

        return await self.reminders.regenerate_reminders(booking_id)
