import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .availability import get_settings, windows_for_day
from .clock import as_utc, at_minutes, day_of_week, overlaps, parse_hhmm
from .errors import ConflictError, ConflictReason
from .models import ACTIVE_STATUSES, Blackout, Booking
from .slots import booking_interval

logger = logging.getLogger(__name__)

FALLBACK_WINDOW = timedelta(hours=1)


class SlotValidator:
    """
    Checks a single requested instant against a provider's schedule.

    Checks run in order and stop at the first failure: availability window,
    full-day blackout, partial blackout, overlapping active booking.
    """

    async def validate(
        self,
        db: AsyncSession,
        provider_id: str,
        instant: datetime,
        exclude_booking_id: str | None = None,
        duration_minutes: int | None = None,
    ) -> None:
        """
        duration_minutes overrides the provider's current slot duration, so a
        rescheduled booking is checked with the length it keeps.
        """
        instant = as_utc(instant)
        settings = await get_settings(db, provider_id)
        if duration_minutes is None:
            duration_minutes = settings.slot_duration_minutes
        end = instant + timedelta(minutes=duration_minutes)
        day = instant.date()

        windows = await windows_for_day(db, provider_id, day_of_week(day))
        fits = any(
            at_minutes(day, parse_hhmm(w.start_time)) <= instant
            and end <= at_minutes(day, parse_hhmm(w.end_time))
            for w in windows
        )
        if not fits:
            raise ConflictError(
                ConflictReason.OUTSIDE_WINDOW,
                "The requested time is outside the practitioner's availability window",
            )

        res = await db.execute(
            select(Blackout).where(Blackout.provider_id == provider_id, Blackout.date == day)
        )
        blackouts = list(res.scalars().all())

        if any(b.is_full_day for b in blackouts):
            raise ConflictError(
                ConflictReason.BLACKED_OUT,
                "The practitioner is unavailable on this date (blackout)",
            )

        for b in blackouts:
            b_start = at_minutes(day, parse_hhmm(b.start_time))
            b_end = at_minutes(day, parse_hhmm(b.end_time))
            if overlaps(instant, end, b_start, b_end):
                raise ConflictError(
                    ConflictReason.BLACKED_OUT,
                    "The requested time overlaps with a blackout period",
                )

        stmt = select(Booking).where(
            Booking.provider_id == provider_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.scheduled_at < end,
            Booking.scheduled_at >= instant - timedelta(days=1),
        )
        if exclude_booking_id:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        res = await db.execute(stmt)
        for booking in res.scalars().all():
            b_start, b_end = booking_interval(booking, settings.slot_duration_minutes)
            if overlaps(instant, end, b_start, b_end):
                raise ConflictError(
                    ConflictReason.DOUBLE_BOOKED,
                    "The requested time conflicts with an existing booking",
                )


async def fallback_conflict_check(
    db: AsyncSession,
    provider_id: str,
    instant: datetime,
    exclude_booking_id: str | None = None,
    duration_minutes: int | None = None,
) -> None:
    """
    Degraded check: any active booking starting within an hour either side.

    Weaker than SlotValidator (ignores windows and blackouts). A booking longer
    than an hour also widens the look-ahead to its own end.
    """
    logger.warning("slot validator unavailable, using +/-1h conflict check for provider %s", provider_id)
    instant = as_utc(instant)
    ahead = FALLBACK_WINDOW
    if duration_minutes is not None:
        ahead = max(ahead, timedelta(minutes=duration_minutes))
    stmt = select(Booking.id).where(
        Booking.provider_id == provider_id,
        Booking.status.in_(ACTIVE_STATUSES),
        Booking.scheduled_at >= instant - FALLBACK_WINDOW,
        Booking.scheduled_at <= instant + ahead,
    )
    if exclude_booking_id:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    res = await db.execute(stmt.limit(1))
    if res.scalar_one_or_none() is not None:
        raise ConflictError(
            ConflictReason.DOUBLE_BOOKED,
            "The practitioner already has a booking within the requested time window",
        )
