"""Lessons API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from tutorcore.modules.lessons.schemas import (
    CapacityUpdate,
    LessonAvailabilityRead,
    LessonCreate,
    LessonDeletionRead,
    LessonRead,
)
from tutorcore.modules.lessons.service import LessonsService, get_lessons_service
from tutorcore.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/lessons", tags=["lessons"])


@router.post("", response_model=LessonRead, status_code=status.HTTP_201_CREATED)
async def create_lesson(
    payload: LessonCreate,
    service: LessonsService = Depends(get_lessons_service),
) -> LessonRead:
    """Create lesson."""
    lesson = await service.create_lesson(
        teacher_id=payload.teacher_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        capacity=payload.capacity,
        subject=payload.subject,
        credits_cost=payload.credits_cost,
    )
    return LessonRead.model_validate(lesson)


@router.get("", response_model=Page[LessonRead])
async def list_lessons(
    teacher_id: UUID | None = None,
    pagination=Depends(get_pagination_params),
    service: LessonsService = Depends(get_lessons_service),
) -> Page[LessonRead]:
    """List lessons, optionally for one teacher."""
    items, total = await service.list_lessons(teacher_id, pagination.limit, pagination.offset)
    serialized = [LessonRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{lesson_id}", response_model=LessonRead)
async def get_lesson(
    lesson_id: UUID,
    service: LessonsService = Depends(get_lessons_service),
) -> LessonRead:
    lesson = await service.get_lesson(lesson_id)
    return LessonRead.model_validate(lesson)


@router.get("/{lesson_id}/availability", response_model=LessonAvailabilityRead)
async def get_availability(
    lesson_id: UUID,
    service: LessonsService = Depends(get_lessons_service),
) -> LessonAvailabilityRead:
    """Seats taken and left for a lesson."""
    availability = await service.get_availability(lesson_id)
    return LessonAvailabilityRead.model_validate(availability)


@router.patch("/{lesson_id}/capacity", response_model=LessonRead)
async def update_capacity(
    lesson_id: UUID,
    payload: CapacityUpdate,
    service: LessonsService = Depends(get_lessons_service),
) -> LessonRead:
    """Change lesson capacity (admin)."""
    lesson = await service.update_capacity(lesson_id, payload.capacity, payload.performed_by)
    return LessonRead.model_validate(lesson)


@router.delete("/{lesson_id}", response_model=LessonDeletionRead)
async def delete_lesson(
    lesson_id: UUID,
    performed_by: UUID | None = None,
    service: LessonsService = Depends(get_lessons_service),
) -> LessonDeletionRead:
    """Soft-delete lesson and cancel its bookings."""
    result = await service.soft_delete_lesson(lesson_id, performed_by)
    return LessonDeletionRead.model_validate(result)
