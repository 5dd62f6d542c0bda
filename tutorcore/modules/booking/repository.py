"""Booking repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from tutorcore.core.enums import BookingStatusEnum
from tutorcore.modules.booking.models import Booking
from tutorcore.modules.lessons.models import Lesson

OPEN_STATUSES = (BookingStatusEnum.PENDING, BookingStatusEnum.ACTIVE)


class BookingRepository:
    """DB operations for bookings."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def savepoint(self) -> AsyncSessionTransaction:
        return self.session.begin_nested()

    async def create_booking(self, student_id: UUID, lesson_id: UUID) -> Booking:
        booking = Booking(
            student_id=student_id,
            lesson_id=lesson_id,
            status=BookingStatusEnum.PENDING,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        stmt = select(Booking).where(Booking.id == booking_id)
        return await self.session.scalar(stmt)

    async def get_booking_for_update(self, booking_id: UUID) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def find_open_booking(self, student_id: UUID, lesson_id: UUID) -> Booking | None:
        stmt = select(Booking).where(
            Booking.student_id == student_id,
            Booking.lesson_id == lesson_id,
            Booking.status.in_(OPEN_STATUSES),
            Booking.deleted_at.is_(None),
        )
        return await self.session.scalar(stmt)

    async def count_active_bookings(self, lesson_id: UUID) -> int:
        stmt = select(func.count(Booking.id)).where(
            Booking.lesson_id == lesson_id,
            Booking.status == BookingStatusEnum.ACTIVE,
            Booking.deleted_at.is_(None),
        )
        return int((await self.session.scalar(stmt)) or 0)

    async def list_bookings(
        self,
        student_id: UUID | None,
        lesson_id: UUID | None,
        status: BookingStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        base_stmt: Select[tuple[Booking]] = select(Booking).where(Booking.deleted_at.is_(None))
        if student_id is not None:
            base_stmt = base_stmt.where(Booking.student_id == student_id)
        if lesson_id is not None:
            base_stmt = base_stmt.where(Booking.lesson_id == lesson_id)
        if status is not None:
            base_stmt = base_stmt.where(Booking.status == status)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Booking.created_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def list_open_bookings_for_lesson(self, lesson_id: UUID) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.lesson_id == lesson_id,
                Booking.status.in_(OPEN_STATUSES),
                Booking.deleted_at.is_(None),
            )
            .order_by(Booking.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list((await self.session.scalars(stmt)).all())

    async def list_open_bookings_for_student(self, student_id: UUID) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.student_id == student_id,
                Booking.status.in_(OPEN_STATUSES),
                Booking.deleted_at.is_(None),
            )
            .order_by(Booking.lesson_id, Booking.id)
        )
        return list((await self.session.scalars(stmt)).all())

    async def find_finished_active_bookings(self, now: datetime, limit: int) -> list[Booking]:
        stmt = (
            select(Booking)
            .join(Lesson, Lesson.id == Booking.lesson_id)
            .where(
                Booking.status == BookingStatusEnum.ACTIVE,
                Booking.deleted_at.is_(None),
                Lesson.deleted_at.is_(None),
                Lesson.end_time <= now,
            )
            .order_by(Booking.lesson_id, Booking.id)
            .limit(limit)
        )
        return list((await self.session.scalars(stmt)).all())

    async def set_status(
        self,
        booking: Booking,
        status: BookingStatusEnum,
        changed_at: datetime,
        reason: str | None = None,
    ) -> Booking:
        booking.status = status
        if status == BookingStatusEnum.ACTIVE:
            booking.activated_at = changed_at
        elif status == BookingStatusEnum.CANCELLED:
            booking.cancelled_at = changed_at
            booking.cancellation_reason = reason
        elif status == BookingStatusEnum.COMPLETED:
            booking.completed_at = changed_at
        await self.session.flush()
        return booking

    async def mark_deleted(self, booking: Booking, deleted_at: datetime) -> Booking:
        booking.deleted_at = deleted_at
        await self.session.flush()
        return booking
