"""Booking API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from tutorcore.core.enums import BookingStatusEnum
from tutorcore.modules.booking.schemas import (
    BookingActionRequest,
    BookingCancelRequest,
    BookingCreateRequest,
    BookingRead,
    BookingTransitionRequest,
    TransitionResultRead,
)
from tutorcore.modules.booking.service import BookingService, get_booking_service
from tutorcore.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=TransitionResultRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreateRequest,
    service: BookingService = Depends(get_booking_service),
) -> TransitionResultRead:
    """Create booking as pending or directly active."""
    result = await service.create_booking(
        lesson_id=payload.lesson_id,
        student_id=payload.student_id,
        target_status=payload.target_status,
        performed_by=payload.performed_by,
    )
    return TransitionResultRead.model_validate(result)


@router.post("/transition", response_model=TransitionResultRead)
async def transition_booking(
    payload: BookingTransitionRequest,
    service: BookingService = Depends(get_booking_service),
) -> TransitionResultRead:
    """Apply a status change request."""
    result = await service.transition(
        booking_id=payload.booking_id,
        lesson_id=payload.lesson_id,
        student_id=payload.student_id,
        target_status=payload.target_status,
        performed_by=payload.performed_by,
        reason=payload.reason,
    )
    return TransitionResultRead.model_validate(result)


@router.post("/{booking_id}/activate", response_model=TransitionResultRead)
async def activate_booking(
    booking_id: UUID,
    payload: BookingActionRequest,
    service: BookingService = Depends(get_booking_service),
) -> TransitionResultRead:
    """Activate pending booking."""
    result = await service.activate_booking(booking_id, payload.performed_by)
    return TransitionResultRead.model_validate(result)


@router.post("/{booking_id}/cancel", response_model=TransitionResultRead)
async def cancel_booking(
    booking_id: UUID,
    payload: BookingCancelRequest,
    service: BookingService = Depends(get_booking_service),
) -> TransitionResultRead:
    """Cancel booking."""
    result = await service.cancel_booking(booking_id, payload.reason, payload.performed_by)
    return TransitionResultRead.model_validate(result)


@router.post("/{booking_id}/complete", response_model=TransitionResultRead)
async def complete_booking(
    booking_id: UUID,
    payload: BookingActionRequest,
    service: BookingService = Depends(get_booking_service),
) -> TransitionResultRead:
    """Complete booking after its lesson ended."""
    result = await service.complete_booking(booking_id, payload.performed_by)
    return TransitionResultRead.model_validate(result)


@router.delete("/{booking_id}", response_model=BookingRead)
async def delete_booking(
    booking_id: UUID,
    performed_by: UUID | None = None,
    service: BookingService = Depends(get_booking_service),
) -> BookingRead:
    """Soft-delete booking."""
    booking = await service.soft_delete_booking(booking_id, performed_by)
    return BookingRead.model_validate(booking)


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> BookingRead:
    booking = await service.get_booking(booking_id)
    return BookingRead.model_validate(booking)


@router.get("", response_model=Page[BookingRead])
async def list_bookings(
    student_id: UUID | None = None,
    lesson_id: UUID | None = None,
    status_filter: BookingStatusEnum | None = None,
    pagination=Depends(get_pagination_params),
    service: BookingService = Depends(get_booking_service),
) -> Page[BookingRead]:
    """List bookings."""
    items, total = await service.list_bookings(
        student_id=student_id,
        lesson_id=lesson_id,
        status=status_filter,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    serialized = [BookingRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)
