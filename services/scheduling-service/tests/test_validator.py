from datetime import date

import pytest

from scheduling_service.errors import ConflictError, ConflictReason
from scheduling_service.models import BookingStatus
from scheduling_service.validator import SlotValidator, fallback_conflict_check

from conftest import PROVIDER, make_blackout, make_booking, make_settings, make_window, utc

MONDAY = date(2026, 3, 16)


@pytest.fixture
def validator():
    return SlotValidator()


async def _reason(coro):
    with pytest.raises(ConflictError) as exc:
        await coro
    return exc.value.reason


class TestSlotValidator:
    @pytest.mark.asyncio
    async def test_accepts_free_slot(self, db, validator):
        await make_window(db, day_of_week=1, start_time="09:00", end_time="12:00")
        await validator.validate(db, PROVIDER, utc(2026, 3, 16, 9, 0))

    @pytest.mark.asyncio
    async def test_slot_must_end_inside_window(self, db, validator):
        await make_window(db, day_of_week=1, start_time="09:00", end_time="12:00")
        reason = await _reason(validator.validate(db, PROVIDER, utc(2026, 3, 16, 11, 30)))
        assert reason == ConflictReason.OUTSIDE_WINDOW

    @pytest.mark.asyncio
    async def test_wrong_weekday(self, db, validator):
        await make_window(db, day_of_week=2, start_time="09:00", end_time="12:00")
        reason = await _reason(validator.validate(db, PROVIDER, utc(2026, 3, 16, 9, 0)))
        assert reason == ConflictReason.OUTSIDE_WINDOW

    @pytest.mark.asyncio
    async def test_slot_past_midnight_never_fits(self, db, validator):
        await make_window(db, day_of_week=1, start_time="20:00", end_time="23:59")
        reason = await _reason(validator.validate(db, PROVIDER, utc(2026, 3, 16, 23, 30)))
        assert reason == ConflictReason.OUTSIDE_WINDOW

    @pytest.mark.asyncio
    async def test_window_checked_before_blackout(self, db, validator):
        await make_blackout(db, MONDAY)
        reason = await _reason(validator.validate(db, PROVIDER, utc(2026, 3, 16, 9, 0)))
        assert reason == ConflictReason.OUTSIDE_WINDOW

    @pytest.mark.asyncio
    async def test_full_day_blackout(self, db, validator):
        await make_window(db, day_of_week=1, start_time="09:00", end_time="12:00")
        await make_blackout(db, MONDAY)
        with pytest.raises(ConflictError) as exc:
            await validator.validate(db, PROVIDER, utc(2026, 3, 16, 9, 0))
        assert exc.value.reason == ConflictReason.BLACKED_OUT
        assert exc.value.status_code == 400
        assert "blackout" in exc.value.detail

    @pytest.mark.asyncio
    async def test_partial_blackout_overlap(self, db, validator):
        await make_window(db, day_of_week=1, start_time="09:00", end_time="12:00")
        await make_blackout(db, MONDAY, "10:30", "11:00")
        reason = await _reason(validator.validate(db, PROVIDER, utc(2026, 3, 16, 10, 0)))
        assert reason == ConflictReason.BLACKED_OUT
        # touching the blackout edge is fine
        await validator.validate(db, PROVIDER, utc(2026, 3, 16, 9, 30))

    @pytest.mark.asyncio
    async def test_blackout_checked_before_bookings(self, db, validator):
        await make_window(db, day_of_week=1, start_time="09:00", end_time="12:00")
        await make_blackout(db, MONDAY, "09:00", "10:00")
        await make_booking(db, utc(2026, 3, 16, 9, 0))
        reason = await _reason(validator.validate(db, PROVIDER, utc(2026, 3, 16, 9, 0)))
        assert reason == ConflictReason.BLACKED_OUT

    @pytest.mark.asyncio
    async def test_double_booking(self, db, validator):
        await make_window(db, day_of_week=0, start_time="08:00", end_time="18:00")
        await make_booking(db, utc(2026, 3, 15, 10, 0))
        with pytest.raises(ConflictError) as exc:
            await validator.validate(db, PROVIDER, utc(2026, 3, 15, 10, 30))
        assert exc.value.reason == ConflictReason.DOUBLE_BOOKED
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_longer_settings_detect_overlap(self, db, validator):
        await make_window(db, day_of_week=0, start_time="08:00", end_time="18:00")
        await make_settings(db, duration=90)
        await make_booking(db, utc(2026, 3, 15, 11, 0))
        reason = await _reason(validator.validate(db, PROVIDER, utc(2026, 3, 15, 9, 45)))
        assert reason == ConflictReason.DOUBLE_BOOKED

    @pytest.mark.asyncio
    async def test_cancelled_booking_does_not_conflict(self, db, validator):
        await make_window(db, day_of_week=0, start_time="08:00", end_time="18:00")
        await make_booking(db, utc(2026, 3, 15, 10, 0), status=BookingStatus.CANCELLED)
        await validator.validate(db, PROVIDER, utc(2026, 3, 15, 10, 0))

    @pytest.mark.asyncio
    async def test_excluded_booking_ignored(self, db, validator):
        await make_window(db, day_of_week=0, start_time="08:00", end_time="18:00")
        booking = await make_booking(db, utc(2026, 3, 15, 10, 0))
        await validator.validate(db, PROVIDER, utc(2026, 3, 15, 10, 30), exclude_booking_id=booking.id)

    @pytest.mark.asyncio
    async def test_explicit_duration_overrides_settings(self, db, validator):
        await make_window(db, day_of_week=0, start_time="08:00", end_time="18:00")
        await make_booking(db, utc(2026, 3, 15, 13, 0))

        await validator.validate(db, PROVIDER, utc(2026, 3, 15, 12, 0))
        reason = await _reason(validator.validate(db, PROVIDER, utc(2026, 3, 15, 12, 0), duration_minutes=120))
        assert reason == ConflictReason.DOUBLE_BOOKED


class TestFallbackCheck:
    @pytest.mark.asyncio
    async def test_rejects_within_an_hour(self, db):
        await make_booking(db, utc(2026, 3, 15, 10, 0))
        reason = await _reason(fallback_conflict_check(db, PROVIDER, utc(2026, 3, 15, 10, 45)))
        assert reason == ConflictReason.DOUBLE_BOOKED

    @pytest.mark.asyncio
    async def test_ignores_windows(self, db):
        # no windows at all, the degraded check still lets it through
        await fallback_conflict_check(db, PROVIDER, utc(2026, 3, 15, 3, 0))

    @pytest.mark.asyncio
    async def test_allows_beyond_an_hour(self, db):
        await make_booking(db, utc(2026, 3, 15, 10, 0))
        await fallback_conflict_check(db, PROVIDER, utc(2026, 3, 15, 11, 30))

    @pytest.mark.asyncio
    async def test_long_booking_widens_look_ahead(self, db):
        await make_booking(db, utc(2026, 3, 15, 10, 0))
        reason = await _reason(fallback_conflict_check(db, PROVIDER, utc(2026, 3, 15, 8, 30), duration_minutes=120))
        assert reason == ConflictReason.DOUBLE_BOOKED
