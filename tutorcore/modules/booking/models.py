"""Booking ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutorcore.core.database import Base, BaseModelMixin, SoftDeleteMixin
from tutorcore.core.enums import BookingStatusEnum

if TYPE_CHECKING:
    from tutorcore.modules.identity.models import User
    from tutorcore.modules.lessons.models import Lesson


class Booking(BaseModelMixin, SoftDeleteMixin, Base):
    """Student seat in a lesson."""

    __tablename__ = "bookings"
    __table_args__ = (
        Index(
            "uq_bookings_open_student_lesson",
            "student_id",
            "lesson_id",
            unique=True,
            postgresql_where=text("status IN ('PENDING', 'ACTIVE') AND deleted_at IS NULL"),
        ),
        Index("ix_bookings_lesson_id_status", "lesson_id", "status"),
    )

    student_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    lesson_id: Mapped[UUID] = mapped_column(ForeignKey("lessons.id", ondelete="RESTRICT"), nullable=False, index=True)

    status: Mapped[BookingStatusEnum] = mapped_column(
        SAEnum(BookingStatusEnum, name="booking_status_enum", native_enum=False),
        default=BookingStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)

    student: Mapped["User"] = relationship(back_populates="bookings_as_student")
    lesson: Mapped["Lesson"] = relationship(back_populates="bookings")
