"""Lessons schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LessonCreate(BaseModel):
    """Create lesson request."""

    teacher_id: UUID
    subject: str | None = Field(default=None, max_length=255)
    start_time: datetime
    end_time: datetime
    capacity: int = Field(ge=1)
    credits_cost: int | None = Field(default=None, ge=0)


class CapacityUpdate(BaseModel):
    """Change lesson capacity request."""

    capacity: int = Field(ge=1)
    performed_by: UUID | None = None


class LessonRead(BaseModel):
    """Lesson response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    teacher_id: UUID
    subject: str | None
    start_time: datetime
    end_time: datetime
    capacity: int
    current_students: int
    credits_cost: int
    created_at: datetime
    updated_at: datetime


class LessonAvailabilityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    capacity: int
    active: int
    free_seats: int
    is_full: bool


class LessonDeletionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson: LessonRead
    bookings_cancelled: int
