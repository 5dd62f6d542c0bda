"""Booking schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tutorcore.core.enums import BookingStatusEnum, CancelResultEnum
from tutorcore.modules.billing.schemas import LedgerResultRead


class BookingCreateRequest(BaseModel):
    """Create booking request."""

    lesson_id: UUID
    student_id: UUID
    target_status: BookingStatusEnum = BookingStatusEnum.PENDING
    performed_by: UUID | None = None


class BookingTransitionRequest(BaseModel):
    """Generic status change request for a new or existing booking."""

    booking_id: UUID | None = None
    lesson_id: UUID | None = None
    student_id: UUID | None = None
    target_status: BookingStatusEnum
    performed_by: UUID | None = None
    reason: str | None = Field(default=None, max_length=512)


class BookingActionRequest(BaseModel):
    performed_by: UUID | None = None


class BookingCancelRequest(BaseModel):
    """Cancel booking request."""

    reason: str | None = Field(default=None, max_length=512)
    performed_by: UUID | None = None


class BookingRead(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    student_id: UUID
    lesson_id: UUID
    status: BookingStatusEnum
    activated_at: datetime | None
    cancelled_at: datetime | None
    completed_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime


class TransitionResultRead(BaseModel):
    """Booking transition response schema."""

    model_config = ConfigDict(from_attributes=True)

    booking: BookingRead
    ledger: LedgerResultRead | None
    chat_room_id: UUID | None
    chat_room_created: bool
    cancel_result: CancelResultEnum | None
