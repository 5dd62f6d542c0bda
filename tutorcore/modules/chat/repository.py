"""Chat repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction
from sqlalchemy.orm import aliased

from tutorcore.core.enums import BookingStatusEnum
from tutorcore.modules.booking.models import Booking
from tutorcore.modules.chat.models import ChatRoom, Message
from tutorcore.modules.identity.models import User
from tutorcore.modules.lessons.models import Lesson


class ChatRepository:
    """DB operations for chat rooms and messages."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def savepoint(self) -> AsyncSessionTransaction:
        return self.session.begin_nested()

    async def create_room_if_absent(self, teacher_id: UUID, student_id: UUID) -> tuple[ChatRoom, bool]:
        """Insert the pair's room unless any row for it exists, deleted or not."""
        stmt = (
            pg_insert(ChatRoom)
            .values(teacher_id=teacher_id, student_id=student_id)
            .on_conflict_do_nothing(index_elements=[ChatRoom.teacher_id, ChatRoom.student_id])
            .returning(ChatRoom.id)
        )
        inserted_id = await self.session.scalar(stmt)
        room = await self.get_room(teacher_id, student_id, include_deleted=True)
        return room, inserted_id is not None

    async def get_room(
        self,
        teacher_id: UUID,
        student_id: UUID,
        include_deleted: bool = False,
    ) -> ChatRoom | None:
        stmt = select(ChatRoom).where(
            ChatRoom.teacher_id == teacher_id,
            ChatRoom.student_id == student_id,
        )
        if not include_deleted:
            stmt = stmt.where(ChatRoom.deleted_at.is_(None))
        return await self.session.scalar(stmt)

    async def list_rooms_for_user(
        self,
        user_id: UUID,
        limit: int,
        offset: int,
    ) -> tuple[list[ChatRoom], int]:
        base_stmt: Select[tuple[ChatRoom]] = select(ChatRoom).where(
            or_(ChatRoom.teacher_id == user_id, ChatRoom.student_id == user_id),
            ChatRoom.deleted_at.is_(None),
        )
        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(ChatRoom.created_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def find_missing_pairs(self, limit: int) -> list[tuple[UUID, UUID]]:
        """Teacher/student pairs with a live active or completed booking but no room row."""
        teacher = aliased(User)
        student = aliased(User)
        room_exists = (
            select(ChatRoom.id)
            .where(
                ChatRoom.teacher_id == Lesson.teacher_id,
                ChatRoom.student_id == Booking.student_id,
            )
            .exists()
        )
        stmt = (
            select(Lesson.teacher_id, Booking.student_id)
            .select_from(Booking)
            .join(Lesson, Lesson.id == Booking.lesson_id)
            .join(teacher, teacher.id == Lesson.teacher_id)
            .join(student, student.id == Booking.student_id)
            .where(
                Booking.status.in_([BookingStatusEnum.ACTIVE, BookingStatusEnum.COMPLETED]),
                Booking.deleted_at.is_(None),
                Lesson.deleted_at.is_(None),
                teacher.deleted_at.is_(None),
                student.deleted_at.is_(None),
                ~room_exists,
            )
            .distinct()
            .limit(limit)
        )
        rows = (await self.session.execute(stmt)).all()
        return [(row[0], row[1]) for row in rows]

    async def soft_delete_rooms_for_user(self, user_id: UUID, deleted_at: datetime) -> tuple[int, int]:
        """Mark the user's rooms and their messages deleted; returns (rooms, messages)."""
        rooms_stmt = (
            update(ChatRoom)
            .where(
                or_(ChatRoom.teacher_id == user_id, ChatRoom.student_id == user_id),
                ChatRoom.deleted_at.is_(None),
            )
            .values(deleted_at=deleted_at)
            .returning(ChatRoom.id)
        )
        room_ids = list((await self.session.scalars(rooms_stmt)).all())
        if not room_ids:
            return 0, 0

        messages_stmt = (
            update(Message)
            .where(Message.room_id.in_(room_ids), Message.deleted_at.is_(None))
            .values(deleted_at=deleted_at)
            .returning(Message.id)
        )
        message_ids = (await self.session.scalars(messages_stmt)).all()
        return len(room_ids), len(message_ids)
