import calendar
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .availability import SlotSettings, get_settings, list_blackouts
from .clock import as_utc, at_minutes, day_of_week, iter_dates, overlaps, parse_hhmm
from .config import MAX_SLOT_RANGE_DAYS
from .errors import ValidationError
from .models import ACTIVE_STATUSES, AvailabilityWindow, Blackout, Booking


@dataclass
class Slot:
    start: datetime
    end: datetime
    available: bool

    def to_dict(self) -> dict:
        return {
            "startTime": self.start.isoformat(),
            "endTime": self.end.isoformat(),
            "available": self.available,
        }


def booking_interval(booking: Booking, slot_duration_minutes: int) -> tuple[datetime, datetime]:
    start = as_utc(booking.scheduled_at)
    end = as_utc(booking.scheduled_end_time) or start + timedelta(minutes=slot_duration_minutes)
    return start, end


def day_slots(
    day: date,
    windows: list[tuple[int, int]],
    blackouts: list[Blackout],
    busy: list[tuple[datetime, datetime]],
    settings: SlotSettings,
) -> list[Slot]:
    """
    Slot grid for one calendar day.

    windows are (start, end) minutes since midnight, blackouts the provider's
    blackouts on that date, busy the intervals of active bookings.
    """
    if any(b.is_full_day for b in blackouts):
        return []

    blocked = [
        (at_minutes(day, parse_hhmm(b.start_time)), at_minutes(day, parse_hhmm(b.end_time)))
        for b in blackouts
    ] + list(busy)

    duration = settings.slot_duration_minutes
    step = duration + settings.buffer_minutes

    slots = []
    for w_start, w_end in sorted(windows):
        start = w_start
        while start + duration <= w_end:
            s = at_minutes(day, start)
            e = s + timedelta(minutes=duration)
            available = not any(overlaps(s, e, b_start, b_end) for b_start, b_end in blocked)
            slots.append(Slot(s, e, available))
            start += step

    slots.sort(key=lambda slot: slot.start)
    return slots


async def _active_bookings(db: AsyncSession, provider_id: str, start: datetime, end: datetime) -> list[Booking]:
    # a booking never lasts longer than a day, so looking one day back is enough
    res = await db.execute(
        select(Booking).where(
            Booking.provider_id == provider_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.scheduled_at >= start - timedelta(days=1),
            Booking.scheduled_at < end,
        )
    )
    return list(res.scalars().all())


async def _build_grid(db: AsyncSession, provider_id: str, start_date: date, end_date: date):
    settings = await get_settings(db, provider_id)

    res = await db.execute(
        select(AvailabilityWindow).where(
            AvailabilityWindow.provider_id == provider_id,
            AvailabilityWindow.is_active.is_(True),
        )
    )
    windows_by_day = defaultdict(list)
    for w in res.scalars().all():
        windows_by_day[w.day_of_week].append((parse_hhmm(w.start_time), parse_hhmm(w.end_time)))

    blackouts_by_date = defaultdict(list)
    for b in await list_blackouts(db, provider_id, start_date, end_date):
        blackouts_by_date[b.date].append(b)

    range_start = at_minutes(start_date, 0)
    range_end = at_minutes(end_date + timedelta(days=1), 0)
    busy = [
        booking_interval(b, settings.slot_duration_minutes)
        for b in await _active_bookings(db, provider_id, range_start, range_end)
    ]

    grid = []
    for d in iter_dates(start_date, end_date):
        day_start = at_minutes(d, 0)
        day_end = day_start + timedelta(days=1)
        day_busy = [(s, e) for s, e in busy if overlaps(s, e, day_start, day_end)]
        slots = day_slots(d, windows_by_day[day_of_week(d)], blackouts_by_date[d], day_busy, settings)
        grid.append((d, slots, any(b.is_full_day for b in blackouts_by_date[d])))
    return grid


async def generate_slots(db: AsyncSession, provider_id: str, start_date: date, end_date: date) -> list[dict]:
    if end_date < start_date:
        raise ValidationError("endDate must not be before startDate")
    if (end_date - start_date).days + 1 > MAX_SLOT_RANGE_DAYS:
        raise ValidationError(f"Date range cannot exceed {MAX_SLOT_RANGE_DAYS} days")

    grid = await _build_grid(db, provider_id, start_date, end_date)
    return [
        {"date": d.isoformat(), "slots": [s.to_dict() for s in slots]}
        for d, slots, _ in grid
    ]


async def calendar_view(db: AsyncSession, provider_id: str, year: int, month: int) -> list[dict]:
    if not 2020 <= year <= 2100:
        raise ValidationError("year must be between 2020 and 2100")
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")

    last_day = calendar.monthrange(year, month)[1]
    grid = await _build_grid(db, provider_id, date(year, month, 1), date(year, month, last_day))
    return [
        {
            "date": d.isoformat(),
            "availableSlots": sum(1 for s in slots if s.available),
            "totalSlots": len(slots),
            "isBlackout": is_blackout,
        }
        for d, slots, is_blackout in grid
    ]
