"""Lessons ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutorcore.core.database import Base, BaseModelMixin, SoftDeleteMixin

if TYPE_CHECKING:
    from tutorcore.modules.booking.models import Booking
    from tutorcore.modules.identity.models import User


class Lesson(BaseModelMixin, SoftDeleteMixin, Base):
    """Group lesson run by a teacher with a fixed number of seats."""

    __tablename__ = "lessons"
    __table_args__ = (
        CheckConstraint("capacity >= 1", name="capacity_positive"),
        CheckConstraint("current_students >= 0", name="current_students_non_negative"),
        CheckConstraint("current_students <= capacity", name="current_students_within_capacity"),
        CheckConstraint("credits_cost >= 0", name="credits_cost_non_negative"),
        CheckConstraint("end_time > start_time", name="end_after_start"),
    )

    teacher_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    # Cache of active booking count, rewritten under the lesson row lock.
    current_students: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    credits_cost: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    teacher: Mapped["User"] = relationship(back_populates="lessons_as_teacher")
    bookings: Mapped[list["Booking"]] = relationship(back_populates="lesson")

    @property
    def free_seats(self) -> int:
        return max(self.capacity - self.current_students, 0)
