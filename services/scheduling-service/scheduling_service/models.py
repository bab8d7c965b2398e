import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text

from .db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    EN_ROUTE = "EN_ROUTE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = (
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.EN_ROUTE.value,
    BookingStatus.IN_PROGRESS.value,
)


class ReminderKind(str, enum.Enum):
    TWENTY_FOUR_HOURS = "TWENTY_FOUR_HOURS"
    ONE_HOUR = "ONE_HOUR"


class AvailabilityWindow(Base):
    __tablename__ = "availability_windows"

    id = Column(String, primary_key=True, default=_uuid)
    provider_id = Column(String, nullable=False, index=True)

    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class Blackout(Base):
    __tablename__ = "blackouts"

    id = Column(String, primary_key=True, default=_uuid)
    provider_id = Column(String, nullable=False, index=True)

    date = Column(Date, nullable=False, index=True)
    # both null = whole day
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)
    reason = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None and self.end_time is None


class ProviderSettings(Base):
    __tablename__ = "provider_settings"

    provider_id = Column(String, primary_key=True)
    slot_duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String, primary_key=True, default=_uuid)
    requester_id = Column(String, nullable=False, index=True)
    provider_id = Column(String, nullable=False, index=True)
    service_type = Column(String, nullable=False)

    status = Column(String, nullable=False, index=True, default=BookingStatus.PENDING.value)

    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    scheduled_end_time = Column(DateTime(timezone=True), nullable=True)

    address = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancellation_reason = Column(String, nullable=True)

    rescheduled_from = Column(DateTime(timezone=True), nullable=True)
    rescheduled_at = Column(DateTime(timezone=True), nullable=True)
    rescheduled_by = Column(String, nullable=True)
    reschedule_reason = Column(String, nullable=True)


class Reminder(Base):
    __tablename__ = "booking_reminders"

    id = Column(String, primary_key=True, default=_uuid)
    booking_id = Column(String, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)

    kind = Column(String, nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    sent = Column(Boolean, nullable=False, default=False)
    job_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class BookingTracking(Base):
    __tablename__ = "booking_tracking"

    booking_id = Column(String, ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)
