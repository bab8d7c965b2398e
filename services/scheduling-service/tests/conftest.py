import os

os.environ.setdefault("SCHEDULING_DB", "sqlite+aiosqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("WORKER_ENABLED", "false")

from datetime import date, datetime, timedelta, timezone  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import fakeredis  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from shared.database import Base, get_engine, get_session  # noqa: E402
from scheduling_service.collaborators import ProviderProfile  # noqa: E402
from scheduling_service.models import AvailabilityWindow, Blackout, Booking, BookingStatus, ProviderSettings  # noqa: E402

# Tuesday; 2026-03-15 is a Sunday and 2026-03-16 a Monday
NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)

PROVIDER = "prov-1"
OTHER_PROVIDER = "prov-2"
REQUESTER = "req-1"
STRANGER = "someone-else"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def fixed_now():
    return NOW


@pytest_asyncio.fixture
async def session_factory():
    engine = get_engine("sqlite+aiosqlite://")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield get_session(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis():
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


class FakeQueue:
    """In-memory stand-in for the delayed queue."""

    def __init__(self):
        self.jobs = {}
        self.removed = []
        self.fail_remove = False
        self.fail_enqueue_after = None
        self._seq = 0

    async def enqueue(self, job_name, payload, delay_seconds):
        if self.fail_enqueue_after is not None and len(self.jobs) >= self.fail_enqueue_after:
            raise ConnectionError("redis unavailable")
        self._seq += 1
        job_id = f"job-{self._seq}"
        self.jobs[job_id] = (job_name, payload, delay_seconds)
        return job_id

    async def remove(self, job_id):
        if self.fail_remove:
            raise ConnectionError("redis unavailable")
        self.removed.append(job_id)
        return self.jobs.pop(job_id, None) is not None


class FakeProfiles:
    def __init__(self, verified=True, available=True, known=True):
        self.verified = verified
        self.available = available
        self.known = known

    async def get_provider_profile(self, provider_id):
        if not self.known:
            return None
        return ProviderProfile(provider_id, self.verified, self.available)


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest.fixture
def messaging():
    return AsyncMock()


@pytest.fixture
def notifier():
    return AsyncMock()


async def make_window(db, provider_id=PROVIDER, day_of_week=0, start_time="08:00", end_time="18:00", is_active=True):
    window = AvailabilityWindow(
        provider_id=provider_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        is_active=is_active,
    )
    db.add(window)
    await db.commit()
    return window


async def make_blackout(db, day: date, start_time=None, end_time=None, provider_id=PROVIDER):
    blackout = Blackout(provider_id=provider_id, date=day, start_time=start_time, end_time=end_time)
    db.add(blackout)
    await db.commit()
    return blackout


async def make_settings(db, duration=60, buffer=0, provider_id=PROVIDER):
    db.add(ProviderSettings(provider_id=provider_id, slot_duration_minutes=duration, buffer_minutes=buffer))
    await db.commit()


async def make_booking(
    db,
    scheduled_at: datetime,
    status: BookingStatus = BookingStatus.PENDING,
    duration_minutes: int = 60,
    provider_id=PROVIDER,
    requester_id=REQUESTER,
):
    booking = Booking(
        requester_id=requester_id,
        provider_id=provider_id,
        service_type="GENERAL_CHECKUP",
        status=status.value,
        scheduled_at=scheduled_at,
        scheduled_end_time=scheduled_at + timedelta(minutes=duration_minutes),
        latitude=52.37,
        longitude=4.89,
    )
    db.add(booking)
    await db.commit()
    return booking
