from datetime import timedelta

import pytest
from sqlalchemy import select

from scheduling_service.clock import as_utc
from scheduling_service.errors import DependencyError, NotFoundError, ValidationError
from scheduling_service.models import BookingStatus, Reminder, ReminderKind
from scheduling_service.reminders import ReminderScheduler

from conftest import NOW, PROVIDER, REQUESTER, fixed_now, make_booking


@pytest.fixture
def scheduler(session_factory, fake_queue, notifier):
    return ReminderScheduler(session_factory, fake_queue, notifier=notifier, now_fn=fixed_now)


async def stored_reminders(session_factory, booking_id):
    async with session_factory() as db:
        res = await db.execute(select(Reminder).where(Reminder.booking_id == booking_id))
        return list(res.scalars().all())


class TestCreateReminders:
    @pytest.mark.asyncio
    async def test_both_reminders(self, db, session_factory, scheduler, fake_queue):
        at = NOW + timedelta(days=2)
        booking = await make_booking(db, at, status=BookingStatus.CONFIRMED)

        created = await scheduler.create_reminders(booking.id, at)

        assert {r.kind for r in created} == {ReminderKind.TWENTY_FOUR_HOURS.value, ReminderKind.ONE_HOUR.value}
        jobs = {name: (payload, delay) for name, payload, delay in fake_queue.jobs.values()}
        assert jobs["reminder-24h"][1] == pytest.approx(24 * 3600)
        assert jobs["reminder-1h"][1] == pytest.approx(47 * 3600)
        assert jobs["reminder-1h"][0]["bookingId"] == booking.id

        rows = await stored_reminders(session_factory, booking.id)
        assert len(rows) == 2
        assert all(r.job_id in fake_queue.jobs for r in rows)
        assert all(not r.sent for r in rows)

    @pytest.mark.asyncio
    async def test_only_one_hour_left(self, db, scheduler, fake_queue):
        at = NOW + timedelta(hours=5)
        booking = await make_booking(db, at, status=BookingStatus.CONFIRMED)

        created = await scheduler.create_reminders(booking.id, at)

        assert [r.kind for r in created] == [ReminderKind.ONE_HOUR.value]
        assert as_utc(created[0].scheduled_for) == at - timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_too_late_for_any(self, db, session_factory, scheduler, fake_queue):
        at = NOW + timedelta(minutes=30)
        booking = await make_booking(db, at, status=BookingStatus.CONFIRMED)

        assert await scheduler.create_reminders(booking.id, at) == []
        assert fake_queue.jobs == {}
        assert await stored_reminders(session_factory, booking.id) == []

    @pytest.mark.asyncio
    async def test_enqueue_failure_keeps_scheduled_jobs_cancelable(self, db, session_factory, scheduler, fake_queue):
        at = NOW + timedelta(days=2)
        booking = await make_booking(db, at, status=BookingStatus.CONFIRMED)
        fake_queue.fail_enqueue_after = 1

        created = await scheduler.create_reminders(booking.id, at)

        assert [r.kind for r in created] == [ReminderKind.TWENTY_FOUR_HOURS.value]
        rows = await stored_reminders(session_factory, booking.id)
        assert [(r.kind, r.job_id) for r in rows] == [(ReminderKind.TWENTY_FOUR_HOURS.value, "job-1")]

        assert await scheduler.cancel_reminders(booking.id) == 1
        assert fake_queue.jobs == {}
        assert fake_queue.removed == ["job-1"]


class TestCancelReminders:
    @pytest.mark.asyncio
    async def test_removes_jobs_and_rows(self, db, session_factory, scheduler, fake_queue):
        at = NOW + timedelta(days=2)
        booking = await make_booking(db, at, status=BookingStatus.CONFIRMED)
        await scheduler.create_reminders(booking.id, at)

        assert await scheduler.cancel_reminders(booking.id) == 2

        assert fake_queue.jobs == {}
        assert len(fake_queue.removed) == 2
        assert await stored_reminders(session_factory, booking.id) == []

    @pytest.mark.asyncio
    async def test_job_removal_failure_still_deletes_rows(self, db, session_factory, scheduler, fake_queue):
        at = NOW + timedelta(days=2)
        booking = await make_booking(db, at, status=BookingStatus.CONFIRMED)
        await scheduler.create_reminders(booking.id, at)
        fake_queue.fail_remove = True

        assert await scheduler.cancel_reminders(booking.id) == 2
        assert await stored_reminders(session_factory, booking.id) == []

    @pytest.mark.asyncio
    async def test_sent_reminders_are_kept(self, db, session_factory, scheduler):
        at = NOW + timedelta(days=2)
        booking = await make_booking(db, at, status=BookingStatus.CONFIRMED)
        db.add(Reminder(booking_id=booking.id, kind=ReminderKind.ONE_HOUR.value, scheduled_for=at, sent=True))
        await db.commit()

        assert await scheduler.cancel_reminders(booking.id) == 0
        assert len(await stored_reminders(session_factory, booking.id)) == 1


class TestRegenerate:
    @pytest.mark.asyncio
    async def test_retimes_against_current_instant(self, db, session_factory, scheduler, fake_queue):
        original = NOW + timedelta(days=2)
        booking = await make_booking(db, original, status=BookingStatus.CONFIRMED)
        await scheduler.create_reminders(booking.id, original)

        moved = original + timedelta(days=1)
        booking.scheduled_at = moved
        await db.commit()

        created = await scheduler.regenerate_reminders(booking.id)

        assert sorted(as_utc(r.scheduled_for) for r in created) == [
            moved - timedelta(hours=24),
            moved - timedelta(hours=1),
        ]
        assert len(await stored_reminders(session_factory, booking.id)) == 2
        assert len(fake_queue.jobs) == 2

    @pytest.mark.asyncio
    async def test_pending_booking_rejected(self, db, scheduler):
        booking = await make_booking(db, NOW + timedelta(days=2))
        with pytest.raises(ValidationError):
            await scheduler.regenerate_reminders(booking.id)

    @pytest.mark.asyncio
    async def test_unknown_booking(self, scheduler):
        with pytest.raises(NotFoundError):
            await scheduler.regenerate_reminders("missing")


class TestHandleReminderJob:
    async def _prepared(self, db, scheduler, fake_queue):
        at = NOW + timedelta(days=2)
        booking = await make_booking(db, at, status=BookingStatus.CONFIRMED)
        await scheduler.create_reminders(booking.id, at)
        name, payload, _ = next(v for v in fake_queue.jobs.values() if v[0] == "reminder-1h")
        return booking, payload

    @pytest.mark.asyncio
    async def test_notifies_both_parties_once(self, db, scheduler, fake_queue, notifier):
        booking, payload = await self._prepared(db, scheduler, fake_queue)

        assert await scheduler.handle_reminder_job(payload) is True
        assert await scheduler.handle_reminder_job(payload) is False

        assert notifier.send.await_count == 2
        recipients = [c.args[0] for c in notifier.send.await_args_list]
        assert recipients == [REQUESTER, PROVIDER]

        user_id, type_, title, body, channel, metadata = notifier.send.await_args_list[0].args
        assert type_ == "BOOKING_REMINDER"
        assert title == "Appointment in 1 hour"
        assert "general checkup" in body
        assert channel == "PUSH"
        assert metadata == {"bookingId": booking.id, "reminderType": "1 hour"}

    @pytest.mark.asyncio
    async def test_one_party_failing_does_not_stop_the_other(self, db, scheduler, fake_queue, notifier):
        _, payload = await self._prepared(db, scheduler, fake_queue)

        async def flaky(user_id, *args, **kwargs):
            if user_id == REQUESTER:
                raise DependencyError("push gateway down")

        notifier.send.side_effect = flaky

        assert await scheduler.handle_reminder_job(payload) is True
        assert [c.args[0] for c in notifier.send.await_args_list] == [REQUESTER, PROVIDER]

    @pytest.mark.asyncio
    async def test_missing_reminder(self, scheduler, notifier):
        assert await scheduler.handle_reminder_job({"bookingId": "b", "reminderId": "gone"}) is False
        notifier.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancelled_booking_skipped(self, db, scheduler, fake_queue, notifier):
        booking, payload = await self._prepared(db, scheduler, fake_queue)
        booking.status = BookingStatus.CANCELLED.value
        await db.commit()

        assert await scheduler.handle_reminder_job(payload) is False
        notifier.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_marks_sent(self, db, session_factory, scheduler, fake_queue):
        booking, payload = await self._prepared(db, scheduler, fake_queue)
        await scheduler.handle_reminder_job(payload)

        async with session_factory() as s:
            reminder = await s.get(Reminder, payload["reminderId"])
        assert reminder.sent is True
