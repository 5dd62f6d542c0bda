"""Identity ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum as SAEnum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutorcore.core.database import Base, BaseModelMixin, SoftDeleteMixin
from tutorcore.core.enums import RoleEnum

if TYPE_CHECKING:
    from tutorcore.modules.billing.models import Credit
    from tutorcore.modules.booking.models import Booking
    from tutorcore.modules.lessons.models import Lesson


class User(BaseModelMixin, SoftDeleteMixin, Base):
    """Platform user; role is fixed at creation."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    role: Mapped[RoleEnum] = mapped_column(
        SAEnum(RoleEnum, name="role_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    credit: Mapped["Credit | None"] = relationship(back_populates="user", uselist=False)
    lessons_as_teacher: Mapped[list["Lesson"]] = relationship(back_populates="teacher")
    bookings_as_student: Mapped[list["Booking"]] = relationship(back_populates="student")
