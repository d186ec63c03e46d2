"""
Bookings API

FastAPI routes for availability and the booking lifecycle. All routes
require the tenant headers; errors are rendered by the handlers in
``clinic_api.api.handlers``.
"""

import datetime as dt
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from clinic_api.api.dependencies import get_actor, get_booking_service, get_tenant_scope
from clinic_api.config import settings
from clinic_api.models.schemas import (
    APIResponse,
    AvailabilityResponse,
    BookingCreate,
    BookingResponse,
    BookingUpdate,
    CancelRequest,
    ErrorResponse,
    TenantScope,
)
from clinic_api.services.booking import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/bookings",
    tags=["bookings"],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
        401: {"model": ErrorResponse, "description": "Missing or invalid tenant headers"},
        404: {"model": ErrorResponse, "description": "Booking or professional not found"},
        409: {"model": ErrorResponse, "description": "Slot unavailable or booking cancelled"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    },
)


@router.get("/available-slots", response_model=AvailabilityResponse)
async def get_available_slots(
    professional_id: uuid.UUID = Query(...),
    day: dt.date = Query(..., alias="date", description="Calendar date, YYYY-MM-DD"),
    duration_minutes: Optional[int] = Query(default=None),
    timezone: Optional[str] = Query(default=None, description="IANA zone of the date"),
    tenant: TenantScope = Depends(get_tenant_scope),
    service: BookingService = Depends(get_booking_service),
) -> AvailabilityResponse:
    """
    List free start times of a professional on a date.

    Example:
        GET /api/v1/bookings/available-slots?professional_id=...&date=2025-12-01
    """
    duration = (
        duration_minutes
        if duration_minutes is not None
        else settings.default_slot_duration_minutes
    )
    slots = await service.get_available_slots(
        tenant, professional_id, day, duration, timezone=timezone
    )
    return AvailabilityResponse(
        professional_id=professional_id,
        date=day,
        duration_minutes=duration,
        timezone=timezone or settings.clinic_timezone,
        slots=slots,
    )


@router.get("", response_model=APIResponse[List[BookingResponse]])
async def list_bookings(
    status: Optional[str] = Query(default=None),
    professional_id: Optional[uuid.UUID] = Query(default=None),
    lead_id: Optional[uuid.UUID] = Query(default=None),
    start_from: Optional[str] = Query(default=None),
    start_until: Optional[str] = Query(default=None),
    tenant: TenantScope = Depends(get_tenant_scope),
    service: BookingService = Depends(get_booking_service),
) -> APIResponse[List[BookingResponse]]:
    bookings = await service.list_bookings(
        tenant,
        status=status,
        professional_id=professional_id,
        lead_id=lead_id,
        start_from=start_from,
        start_until=start_until,
    )
    return APIResponse(
        data=[BookingResponse.model_validate(b) for b in bookings],
        total=len(bookings),
    )


@router.get("/{booking_id}", response_model=APIResponse[BookingResponse])
async def get_booking(
    booking_id: str,
    tenant: TenantScope = Depends(get_tenant_scope),
    service: BookingService = Depends(get_booking_service),
) -> APIResponse[BookingResponse]:
    booking = await service.get_booking(tenant, booking_id)
    return APIResponse(data=BookingResponse.model_validate(booking))


@router.post("", response_model=APIResponse[BookingResponse], status_code=201)
async def create_booking(
    payload: BookingCreate,
    tenant: TenantScope = Depends(get_tenant_scope),
    actor: Optional[str] = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
) -> APIResponse[BookingResponse]:
    """
    Create a booking.

    Responds 409 SLOT_UNAVAILABLE with the conflicting intervals when the
    professional is already booked.
    """
    booking = await service.create_booking(tenant, payload, actor=actor)
    return APIResponse(
        message="Booking created",
        data=BookingResponse.model_validate(booking),
    )


@router.patch("/{booking_id}", response_model=APIResponse[BookingResponse])
async def update_booking(
    booking_id: str,
    payload: BookingUpdate,
    tenant: TenantScope = Depends(get_tenant_scope),
    actor: Optional[str] = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
) -> APIResponse[BookingResponse]:
    booking = await service.update_booking(tenant, booking_id, payload, actor=actor)
    return APIResponse(
        message="Booking updated",
        data=BookingResponse.model_validate(booking),
    )


@router.patch("/{booking_id}/confirm", response_model=APIResponse[BookingResponse])
async def confirm_booking(
    booking_id: str,
    tenant: TenantScope = Depends(get_tenant_scope),
    actor: Optional[str] = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
) -> APIResponse[BookingResponse]:
    booking = await service.confirm_booking(tenant, booking_id, actor=actor)
    return APIResponse(
        message="Booking confirmed",
        data=BookingResponse.model_validate(booking),
    )


@router.patch("/{booking_id}/cancel", response_model=APIResponse[BookingResponse])
async def cancel_booking(
    booking_id: str,
    body: Optional[CancelRequest] = None,
    tenant: TenantScope = Depends(get_tenant_scope),
    actor: Optional[str] = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
) -> APIResponse[BookingResponse]:
    reason = body.reason if body else None
    booking = await service.cancel_booking(tenant, booking_id, reason=reason, actor=actor)
    return APIResponse(
        message="Booking cancelled",
        data=BookingResponse.model_validate(booking),
    )


@router.delete("/{booking_id}", response_model=APIResponse[None])
async def delete_booking(
    booking_id: str,
    tenant: TenantScope = Depends(get_tenant_scope),
    actor: Optional[str] = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
) -> APIResponse[None]:
    await service.delete_booking(tenant, booking_id, actor=actor)
    return APIResponse(message="Booking deleted")
