import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .clock import parse_hhmm
from .config import (
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_SLOT_DURATION_MINUTES,
    MAX_BUFFER_MINUTES,
    MAX_SLOT_DURATION_MINUTES,
    MIN_SLOT_DURATION_MINUTES,
)
from .errors import NotFoundError, OwnershipError, ValidationError
from .models import AvailabilityWindow, Blackout, ProviderSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotSettings:
    slot_duration_minutes: int = DEFAULT_SLOT_DURATION_MINUTES
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES


def _check_day(day_of_week: int):
    if not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")


def _check_range(start_time: str, end_time: str):
    if parse_hhmm(end_time) <= parse_hhmm(start_time):
        raise ValidationError("end_time must be after start_time")


# -------- windows --------

async def list_windows(db: AsyncSession, provider_id: str) -> list[AvailabilityWindow]:
    res = await db.execute(
        select(AvailabilityWindow)
        .where(AvailabilityWindow.provider_id == provider_id)
        .order_by(AvailabilityWindow.day_of_week, AvailabilityWindow.start_time)
    )
    return list(res.scalars().all())


async def _owned_window(db: AsyncSession, provider_id: str, window_id: str) -> AvailabilityWindow:
    window = await db.get(AvailabilityWindow, window_id)
    if not window:
        raise NotFoundError(f"Availability record {window_id} not found")
    if window.provider_id != provider_id:
        raise OwnershipError("You do not own this availability record", expected="provider")
    return window


async def create_window(
    db: AsyncSession,
    provider_id: str,
    day_of_week: int,
    start_time: str,
    end_time: str,
    is_active: bool = True,
) -> AvailabilityWindow:
    _check_day(day_of_week)
    _check_range(start_time, end_time)

    window = AvailabilityWindow(
        provider_id=provider_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        is_active=is_active,
    )
    db.add(window)
    await db.commit()
    logger.info("window %s created for provider %s", window.id, provider_id)
    return window


async def update_window(db: AsyncSession, provider_id: str, window_id: str, changes: dict) -> AvailabilityWindow:
    window = await _owned_window(db, provider_id, window_id)

    day = changes.get("day_of_week")
    if day is None:
        day = window.day_of_week
    start_time = changes.get("start_time") or window.start_time
    end_time = changes.get("end_time") or window.end_time
    _check_day(day)
    _check_range(start_time, end_time)

    window.day_of_week = day
    window.start_time = start_time
    window.end_time = end_time
    if changes.get("is_active") is not None:
        window.is_active = changes["is_active"]

    await db.commit()
    return window


async def delete_window(db: AsyncSession, provider_id: str, window_id: str) -> None:
    window = await _owned_window(db, provider_id, window_id)
    await db.delete(window)
    await db.commit()


async def replace_windows(db: AsyncSession, provider_id: str, windows: list[dict]) -> list[AvailabilityWindow]:
    """
    Replace the provider's whole weekly schedule.

    Every entry is validated before anything is touched; the delete and the
    inserts share one transaction.
    """
    for w in windows:
        _check_day(w["day_of_week"])
        _check_range(w["start_time"], w["end_time"])

    await db.execute(delete(AvailabilityWindow).where(AvailabilityWindow.provider_id == provider_id))
    created = [
        AvailabilityWindow(
            provider_id=provider_id,
            day_of_week=w["day_of_week"],
            start_time=w["start_time"],
            end_time=w["end_time"],
            is_active=w.get("is_active", True),
        )
        for w in windows
    ]
    db.add_all(created)
    await db.commit()
    logger.info("provider %s schedule replaced with %d windows", provider_id, len(created))
    return created


async def windows_for_day(db: AsyncSession, provider_id: str, day_of_week: int) -> list[AvailabilityWindow]:
    res = await db.execute(
        select(AvailabilityWindow).where(
            AvailabilityWindow.provider_id == provider_id,
            AvailabilityWindow.day_of_week == day_of_week,
            AvailabilityWindow.is_active.is_(True),
        )
    )
    return list(res.scalars().all())


# -------- blackouts --------

async def list_blackouts(
    db: AsyncSession,
    provider_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Blackout]:
    stmt = select(Blackout).where(Blackout.provider_id == provider_id)
    if start_date:
        stmt = stmt.where(Blackout.date >= start_date)
    if end_date:
        stmt = stmt.where(Blackout.date <= end_date)
    res = await db.execute(stmt.order_by(Blackout.date, Blackout.start_time))
    return list(res.scalars().all())


async def create_blackout(
    db: AsyncSession,
    provider_id: str,
    day: date,
    start_time: str | None = None,
    end_time: str | None = None,
    reason: str | None = None,
) -> Blackout:
    if (start_time is None) != (end_time is None):
        raise ValidationError("A partial blackout needs both start_time and end_time")
    if start_time is not None:
        _check_range(start_time, end_time)

    blackout = Blackout(
        provider_id=provider_id,
        date=day,
        start_time=start_time,
        end_time=end_time,
        reason=reason,
    )
    db.add(blackout)
    await db.commit()
    logger.info("blackout %s created for provider %s on %s", blackout.id, provider_id, day.isoformat())
    return blackout


async def delete_blackout(db: AsyncSession, provider_id: str, blackout_id: str) -> None:
    blackout = await db.get(Blackout, blackout_id)
    if not blackout:
        raise NotFoundError(f"Blackout {blackout_id} not found")
    if blackout.provider_id != provider_id:
        raise OwnershipError("You do not own this blackout", expected="provider")
    await db.delete(blackout)
    await db.commit()


# -------- settings --------

async def get_settings(db: AsyncSession, provider_id: str) -> SlotSettings:
    row = await db.get(ProviderSettings, provider_id)
    if not row:
        return SlotSettings()
    return SlotSettings(row.slot_duration_minutes, row.buffer_minutes)


async def update_settings(
    db: AsyncSession,
    provider_id: str,
    slot_duration_minutes: int | None = None,
    buffer_minutes: int | None = None,
) -> SlotSettings:
    if slot_duration_minutes is not None and not (
        MIN_SLOT_DURATION_MINUTES <= slot_duration_minutes <= MAX_SLOT_DURATION_MINUTES
    ):
        raise ValidationError(
            f"slot_duration_minutes must be between {MIN_SLOT_DURATION_MINUTES} and {MAX_SLOT_DURATION_MINUTES}"
        )
    if buffer_minutes is not None and not 0 <= buffer_minutes <= MAX_BUFFER_MINUTES:
        raise ValidationError(f"buffer_minutes must be between 0 and {MAX_BUFFER_MINUTES}")

    row = await db.get(ProviderSettings, provider_id)
    if not row:
        row = ProviderSettings(
            provider_id=provider_id,
            slot_duration_minutes=DEFAULT_SLOT_DURATION_MINUTES,
            buffer_minutes=DEFAULT_BUFFER_MINUTES,
        )
        db.add(row)
    if slot_duration_minutes is not None:
        row.slot_duration_minutes = slot_duration_minutes
    if buffer_minutes is not None:
        row.buffer_minutes = buffer_minutes

    await db.commit()
    return SlotSettings(row.slot_duration_minutes, row.buffer_minutes)
