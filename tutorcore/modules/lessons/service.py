"""Lessons business logic layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorcore.core.config import get_settings
from tutorcore.core.database import get_db_session
from tutorcore.core.enums import RoleEnum
from tutorcore.modules.audit.repository import AuditRepository
from tutorcore.modules.booking.service import BookingService, build_booking_service
from tutorcore.modules.identity.repository import IdentityRepository
from tutorcore.modules.lessons.guard import OverbookingGuard
from tutorcore.modules.lessons.models import Lesson
from tutorcore.modules.lessons.repository import LessonsRepository
from tutorcore.shared.exceptions import (
    BusinessRuleException,
    NotFoundException,
    OrphanReferenceException,
)
from tutorcore.shared.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass(slots=True)
class LessonAvailability:
    lesson_id: UUID
    capacity: int
    active: int
    free_seats: int
    is_full: bool


@dataclass(slots=True)
class LessonDeletionResult:
    lesson: Lesson
    bookings_cancelled: int


class LessonsService:
    """Lessons domain service."""

    def __init__(
        self,
        repository: LessonsRepository,
        identity_repository: IdentityRepository,
        audit_repository: AuditRepository,
        booking_service: BookingService,
        *,
        now_provider=utc_now,
    ) -> None:
        self.repository = repository
        self.identity_repository = identity_repository
        self.audit_repository = audit_repository
        self.booking_service = booking_service
        self.guard = OverbookingGuard(booking_service.repository)
        self.now_provider = now_provider

    async def create_lesson(
        self,
        teacher_id: UUID,
        start_time: datetime,
        end_time: datetime,
        capacity: int,
        subject: str | None = None,
        credits_cost: int | None = None,
    ) -> Lesson:
        """Schedule a lesson for a live teacher."""
        teacher = await self.identity_repository.get_user_by_id(teacher_id)
        if teacher is None or teacher.is_deleted:
            raise OrphanReferenceException("Teacher not found or deleted")
        if teacher.role != RoleEnum.TEACHER:
            raise BusinessRuleException("Lessons can be run only by teachers")

        start_time = ensure_utc(start_time)
        end_time = ensure_utc(end_time)
        if end_time <= start_time:
            raise BusinessRuleException("Lesson end must be greater than start")
        if capacity < 1:
            raise BusinessRuleException("Lesson capacity must be at least 1")

        if credits_cost is None:
            credits_cost = settings.default_lesson_credits_cost
        credits_cost = max(credits_cost, 0)

        lesson = await self.repository.create_lesson(
            teacher_id=teacher_id,
            subject=subject,
            start_time=start_time,
            end_time=end_time,
            capacity=capacity,
            credits_cost=credits_cost,
        )
        logger.info("Lesson created: lesson_id=%s teacher_id=%s capacity=%s", lesson.id, teacher_id, capacity)
        return lesson

    async def update_capacity(
        self,
        lesson_id: UUID,
        capacity: int,
        performed_by: UUID | None = None,
    ) -> Lesson:
        """Change seat count; never below the seats already taken."""
        if capacity < 1:
            raise BusinessRuleException("Lesson capacity must be at least 1")

        lesson = await self.repository.get_lesson_for_update(lesson_id)
        if lesson is None or lesson.is_deleted:
            raise NotFoundException("Lesson not found")

        active = await self.guard.count_active(lesson)
        if capacity < active:
            raise BusinessRuleException(
                f"Capacity {capacity} is below the {active} active bookings",
            )

        previous = lesson.capacity
        await self.repository.set_current_students(lesson, active)
        await self.repository.set_capacity(lesson, capacity)
        await self.audit_repository.create_audit_log(
            actor_id=performed_by,
            action="lesson.capacity.update",
            entity_type="lesson",
            entity_id=str(lesson.id),
            payload={"capacity_before": previous, "capacity_after": capacity, "active": active},
        )
        logger.info("Lesson capacity updated: lesson_id=%s %s -> %s", lesson.id, previous, capacity)
        return lesson

    async def get_lesson(self, lesson_id: UUID) -> Lesson:
        lesson = await self.repository.get_lesson_by_id(lesson_id)
        if lesson is None or lesson.is_deleted:
            raise NotFoundException("Lesson not found")
        return lesson

    async def get_availability(self, lesson_id: UUID) -> LessonAvailability:
        """Seats view computed from live bookings."""
        lesson = await self.get_lesson(lesson_id)
        active = await self.guard.count_active(lesson)
        free_seats = max(lesson.capacity - active, 0)
        return LessonAvailability(
            lesson_id=lesson.id,
            capacity=lesson.capacity,
            active=active,
            free_seats=free_seats,
            is_full=free_seats == 0,
        )

    async def list_lessons(
        self,
        teacher_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Lesson], int]:
        return await self.repository.list_lessons(teacher_id, limit, offset)

    async def soft_delete_lesson(
        self,
        lesson_id: UUID,
        performed_by: UUID | None = None,
    ) -> LessonDeletionResult:
        """Hide a lesson and cancel its open bookings, refunding active ones."""
        lesson = await self.repository.get_lesson_for_update(lesson_id)
        if lesson is None:
            raise NotFoundException("Lesson not found")
        if lesson.is_deleted:
            return LessonDeletionResult(lesson=lesson, bookings_cancelled=0)

        cancelled = await self.booking_service.release_lesson_bookings(
            lesson,
            reason="Lesson deleted",
            performed_by=performed_by,
        )
        await self.repository.mark_deleted(lesson, self.now_provider())
        await self.audit_repository.create_audit_log(
            actor_id=performed_by,
            action="lesson.delete",
            entity_type="lesson",
            entity_id=str(lesson.id),
            payload={"bookings_cancelled": cancelled},
        )
        logger.info("Lesson deleted: lesson_id=%s bookings_cancelled=%s", lesson.id, cancelled)
        return LessonDeletionResult(lesson=lesson, bookings_cancelled=cancelled)

    async def soft_delete_teacher_lessons(
        self,
        teacher_id: UUID,
        performed_by: UUID | None = None,
    ) -> tuple[int, int]:
        """Delete every live lesson of a teacher; returns (lessons, bookings cancelled)."""
        lesson_ids = await self.repository.list_lesson_ids_for_teacher(teacher_id)
        bookings_cancelled = 0
        for lesson_id in lesson_ids:
            result = await self.soft_delete_lesson(lesson_id, performed_by)
            bookings_cancelled += result.bookings_cancelled
        return len(lesson_ids), bookings_cancelled


def build_lessons_service(session: AsyncSession) -> LessonsService:
    return LessonsService(
        LessonsRepository(session),
        IdentityRepository(session),
        AuditRepository(session),
        build_booking_service(session),
    )


async def get_lessons_service(session: AsyncSession = Depends(get_db_session)) -> LessonsService:
    """Dependency provider for lessons service."""
    return build_lessons_service(session)
