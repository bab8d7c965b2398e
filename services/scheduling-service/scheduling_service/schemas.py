from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from .clock import as_utc


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# -------- bookings --------

class CreateBookingRequest(CamelModel):
    provider_id: str
    service_type: str
    scheduled_at: datetime
    address: str | None = None
    lat: float | None = None
    lng: float | None = None
    notes: str | None = None


class ReasonRequest(CamelModel):
    reason: str | None = None


class RescheduleRequest(CamelModel):
    scheduled_at: datetime
    reason: str | None = None


class BookingResponse(CamelModel):
    id: str
    requester_id: str
    provider_id: str
    service_type: str
    status: str
    scheduled_at: datetime
    scheduled_end_time: datetime | None = None
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    notes: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    rescheduled_from: datetime | None = None
    rescheduled_at: datetime | None = None
    rescheduled_by: str | None = None
    reschedule_reason: str | None = None

    @field_validator(
        "scheduled_at",
        "scheduled_end_time",
        "created_at",
        "started_at",
        "completed_at",
        "cancelled_at",
        "rescheduled_from",
        "rescheduled_at",
    )
    @classmethod
    def _utc(cls, v):
        return as_utc(v)


class ReminderResponse(CamelModel):
    id: str
    booking_id: str
    kind: str
    scheduled_for: datetime
    sent: bool
    job_id: str | None = None

    @field_validator("scheduled_for")
    @classmethod
    def _utc(cls, v):
        return as_utc(v)


# -------- availability --------

class WindowRequest(CamelModel):
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool = True


class WindowUpdateRequest(CamelModel):
    day_of_week: int | None = None
    start_time: str | None = None
    end_time: str | None = None
    is_active: bool | None = None


class BulkWindowsRequest(CamelModel):
    windows: list[WindowRequest]


class WindowResponse(CamelModel):
    id: str
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool


class BlackoutRequest(CamelModel):
    date: str
    start_time: str | None = None
    end_time: str | None = None
    reason: str | None = None


class BlackoutResponse(CamelModel):
    id: str
    date: date
    start_time: str | None = None
    end_time: str | None = None
    reason: str | None = None


class SettingsUpdateRequest(CamelModel):
    slot_duration_minutes: int | None = None
    buffer_minutes: int | None = None


class SettingsResponse(CamelModel):
    slot_duration_minutes: int
    buffer_minutes: int
