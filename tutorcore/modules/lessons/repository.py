"""Lessons repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorcore.modules.lessons.models import Lesson


class LessonsRepository:
    """DB operations for lessons."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_lesson(
        self,
        teacher_id: UUID,
        subject: str | None,
        start_time: datetime,
        end_time: datetime,
        capacity: int,
        credits_cost: int,
    ) -> Lesson:
        lesson = Lesson(
            teacher_id=teacher_id,
            subject=subject,
            start_time=start_time,
            end_time=end_time,
            capacity=capacity,
            current_students=0,
            credits_cost=credits_cost,
        )
        self.session.add(lesson)
        await self.session.flush()
        return lesson

    async def get_lesson_by_id(self, lesson_id: UUID) -> Lesson | None:
        stmt = select(Lesson).where(Lesson.id == lesson_id)
        return await self.session.scalar(stmt)

    async def get_lesson_for_update(self, lesson_id: UUID) -> Lesson | None:
        stmt = (
            select(Lesson)
            .where(Lesson.id == lesson_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def list_lessons(
        self,
        teacher_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Lesson], int]:
        base_stmt: Select[tuple[Lesson]] = select(Lesson).where(Lesson.deleted_at.is_(None))
        if teacher_id is not None:
            base_stmt = base_stmt.where(Lesson.teacher_id == teacher_id)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Lesson.start_time.asc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def list_lesson_ids_for_teacher(self, teacher_id: UUID) -> list[UUID]:
        stmt = (
            select(Lesson.id)
            .where(Lesson.teacher_id == teacher_id, Lesson.deleted_at.is_(None))
            .order_by(Lesson.id)
        )
        return list((await self.session.scalars(stmt)).all())

    async def set_current_students(self, lesson: Lesson, current_students: int) -> Lesson:
        lesson.current_students = current_students
        await self.session.flush()
        return lesson

    async def set_capacity(self, lesson: Lesson, capacity: int) -> Lesson:
        lesson.capacity = capacity
        await self.session.flush()
        return lesson

    async def mark_deleted(self, lesson: Lesson, deleted_at: datetime) -> Lesson:
        lesson.deleted_at = deleted_at
        await self.session.flush()
        return lesson
