"""Credit ledger ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Identity, Index, Integer, String, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutorcore.core.database import Base, BaseModelMixin
from tutorcore.core.enums import CreditOperationEnum

if TYPE_CHECKING:
    from tutorcore.modules.identity.models import User


class Credit(BaseModelMixin, Base):
    """Per-user prepaid balance."""

    __tablename__ = "credits"
    __table_args__ = (CheckConstraint("balance >= 0", name="balance_non_negative"),)

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    user: Mapped[User] = relationship(back_populates="credit")


class CreditTransaction(BaseModelMixin, Base):
    """Append-only record of one balance mutation."""

    __tablename__ = "credit_transactions"
    __table_args__ = (
        Index(
            "uq_credit_transactions_refund_booking_id",
            "booking_id",
            unique=True,
            postgresql_where=text("operation_type = 'REFUND'"),
        ),
        Index("ix_credit_transactions_user_id_created_at", "user_id", "created_at"),
    )

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    operation_type: Mapped[CreditOperationEnum] = mapped_column(
        SAEnum(CreditOperationEnum, name="credit_operation_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    reason: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    performed_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    booking_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    # Allocated under the credit row lock, so it orders one user's entries by commit.
    entry_no: Mapped[int] = mapped_column(BigInteger, Identity(always=False), nullable=False, unique=True)
