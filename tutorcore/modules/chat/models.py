"""Chat ORM models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutorcore.core.database import Base, BaseModelMixin, SoftDeleteMixin
from tutorcore.core.enums import MessageStatusEnum


class ChatRoom(BaseModelMixin, SoftDeleteMixin, Base):
    """One-to-one channel between a teacher and a student."""

    __tablename__ = "chat_rooms"
    # Covers deleted rows too, so a soft-deleted room is never recreated.
    __table_args__ = (UniqueConstraint("teacher_id", "student_id", name="uq_chat_rooms_teacher_id_student_id"),)

    teacher_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    student_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    messages: Mapped[list[Message]] = relationship(back_populates="room")


class Message(BaseModelMixin, SoftDeleteMixin, Base):
    """Chat message with moderation status."""

    __tablename__ = "messages"

    room_id: Mapped[UUID] = mapped_column(ForeignKey("chat_rooms.id", ondelete="RESTRICT"), nullable=False, index=True)
    sender_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[MessageStatusEnum] = mapped_column(
        SAEnum(MessageStatusEnum, name="message_status_enum", native_enum=False),
        default=MessageStatusEnum.PENDING_MODERATION,
        nullable=False,
        index=True,
    )

    room: Mapped[ChatRoom] = relationship(back_populates="messages")
