from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from . import availability
from .bookings import BookingService, NewBooking
from .clock import parse_date
from .deps import get_booking_service, get_db
from .schemas import (
    BlackoutRequest,
    BlackoutResponse,
    BookingResponse,
    BulkWindowsRequest,
    CreateBookingRequest,
    ReasonRequest,
    ReminderResponse,
    RescheduleRequest,
    SettingsResponse,
    SettingsUpdateRequest,
    WindowRequest,
    WindowResponse,
    WindowUpdateRequest,
)
from .security import Actor, get_actor, require_provider
from .slots import calendar_view, generate_slots

router = APIRouter()


# -------- booking lifecycle --------

@router.post("/bookings", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: CreateBookingRequest,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.create(
        actor.user_id,
        NewBooking(
            provider_id=data.provider_id,
            service_type=data.service_type,
            scheduled_at=data.scheduled_at,
            address=data.address,
            latitude=data.lat,
            longitude=data.lng,
            notes=data.notes,
        ),
    )
    return booking


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    return await service.get_booking(booking_id, actor.user_id)


@router.patch("/bookings/{booking_id}/accept", response_model=BookingResponse)
async def accept_booking(
    booking_id: str,
    actor: Actor = Depends(require_provider),
    service: BookingService = Depends(get_booking_service),
):
    return await service.accept(booking_id, actor.user_id)


@router.patch("/bookings/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: str,
    data: ReasonRequest | None = None,
    actor: Actor = Depends(require_provider),
    service: BookingService = Depends(get_booking_service),
):
    return await service.reject(booking_id, actor.user_id, data.reason if data else None)


@router.patch("/bookings/{booking_id}/en-route", response_model=BookingResponse)
async def booking_en_route(
    booking_id: str,
    actor: Actor = Depends(require_provider),
    service: BookingService = Depends(get_booking_service),
):
    return await service.en_route(booking_id, actor.user_id)


@router.patch("/bookings/{booking_id}/start", response_model=BookingResponse)
async def start_visit(
    booking_id: str,
    actor: Actor = Depends(require_provider),
    service: BookingService = Depends(get_booking_service),
):
    return await service.start_visit(booking_id, actor.user_id)


@router.patch("/bookings/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: str,
    actor: Actor = Depends(require_provider),
    service: BookingService = Depends(get_booking_service),
):
    return await service.complete(booking_id, actor.user_id)


@router.patch("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    data: ReasonRequest | None = None,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    return await service.cancel(booking_id, actor.user_id, data.reason if data else None)


@router.patch("/scheduling/bookings/{booking_id}/reschedule", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: str,
    data: RescheduleRequest,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    return await service.reschedule(booking_id, actor.user_id, data.scheduled_at, data.reason)


@router.post("/scheduling/bookings/{booking_id}/reminders/regenerate", response_model=list[ReminderResponse])
async def regenerate_reminders(
    booking_id: str,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    return await service.regenerate_reminders(booking_id, actor.user_id)


# -------- slots --------

@router.get("/scheduling/practitioners/{provider_id}/slots")
async def get_slots(
    provider_id: str,
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    db: AsyncSession = Depends(get_db),
):
    return await generate_slots(db, provider_id, parse_date(start_date), parse_date(end_date))


@router.get("/scheduling/practitioners/{provider_id}/calendar")
async def get_calendar(
    provider_id: str,
    year: int = Query(...),
    month: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    return await calendar_view(db, provider_id, year, month)


# -------- availability (provider only) --------

@router.get("/scheduling/availability", response_model=list[WindowResponse])
async def list_availability(actor: Actor = Depends(require_provider), db: AsyncSession = Depends(get_db)):
    return await availability.list_windows(db, actor.user_id)


@router.post("/scheduling/availability", response_model=WindowResponse, status_code=201)
async def create_availability(
    data: WindowRequest,
    actor: Actor = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    return await availability.create_window(
        db, actor.user_id, data.day_of_week, data.start_time, data.end_time, data.is_active
    )


@router.post("/scheduling/availability/bulk", response_model=list[WindowResponse])
async def replace_availability(
    data: BulkWindowsRequest,
    actor: Actor = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    return await availability.replace_windows(db, actor.user_id, [w.model_dump() for w in data.windows])


@router.put("/scheduling/availability/{window_id}", response_model=WindowResponse)
async def update_availability(
    window_id: str,
    data: WindowUpdateRequest,
    actor: Actor = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    return await availability.update_window(db, actor.user_id, window_id, data.model_dump(exclude_unset=True))


@router.delete("/scheduling/availability/{window_id}", status_code=204)
async def delete_availability(
    window_id: str,
    actor: Actor = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    await availability.delete_window(db, actor.user_id, window_id)
    return Response(status_code=204)


@router.get("/scheduling/blackouts", response_model=list[BlackoutResponse])
async def list_blackouts(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    actor: Actor = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    return await availability.list_blackouts(
        db,
        actor.user_id,
        parse_date(start_date) if start_date else None,
        parse_date(end_date) if end_date else None,
    )


@router.post("/scheduling/blackouts", response_model=BlackoutResponse, status_code=201)
async def create_blackout(
    data: BlackoutRequest,
    actor: Actor = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    return await availability.create_blackout(
        db, actor.user_id, parse_date(data.date), data.start_time, data.end_time, data.reason
    )


@router.delete("/scheduling/blackouts/{blackout_id}", status_code=204)
async def delete_blackout(
    blackout_id: str,
    actor: Actor = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    await availability.delete_blackout(db, actor.user_id, blackout_id)
    return Response(status_code=204)


@router.get("/scheduling/settings", response_model=SettingsResponse)
async def get_settings(actor: Actor = Depends(require_provider), db: AsyncSession = Depends(get_db)):
    return await availability.get_settings(db, actor.user_id)


@router.patch("/scheduling/settings", response_model=SettingsResponse)
async def update_settings(
    data: SettingsUpdateRequest,
    actor: Actor = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    return await availability.update_settings(db, actor.user_id, data.slot_duration_minutes, data.buffer_minutes)
