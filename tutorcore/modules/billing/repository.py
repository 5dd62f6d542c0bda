"""Credit ledger repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from tutorcore.core.enums import BookingStatusEnum, CreditOperationEnum
from tutorcore.modules.billing.models import Credit, CreditTransaction
from tutorcore.modules.booking.models import Booking


class BillingRepository:
    """DB access methods for credits and their transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_credit(self, user_id: UUID) -> Credit | None:
        stmt = select(Credit).where(Credit.user_id == user_id)
        return await self.session.scalar(stmt)

    async def get_credit_for_update(self, user_id: UUID) -> Credit:
        """Ensure the credit row exists and lock it for the rest of the transaction."""
        ensure_stmt = (
            pg_insert(Credit)
            .values(user_id=user_id, balance=0)
            .on_conflict_do_nothing(index_elements=[Credit.user_id])
        )
        await self.session.execute(ensure_stmt)

        stmt = (
            select(Credit)
            .where(Credit.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return (await self.session.scalars(stmt)).one()

    async def set_balance(self, credit: Credit, balance: int) -> Credit:
        credit.balance = balance
        await self.session.flush()
        return credit

    async def create_transaction(
        self,
        user_id: UUID,
        amount: int,
        operation_type: CreditOperationEnum,
        reason: str,
        performed_by: UUID | None,
        booking_id: UUID | None,
        balance_before: int,
        balance_after: int,
    ) -> CreditTransaction:
        transaction = CreditTransaction(
            user_id=user_id,
            amount=amount,
            operation_type=operation_type,
            reason=reason,
            performed_by=performed_by,
            booking_id=booking_id,
            balance_before=balance_before,
            balance_after=balance_after,
        )
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def get_booking_transaction(
        self,
        booking_id: UUID,
        operation_type: CreditOperationEnum,
    ) -> CreditTransaction | None:
        stmt = (
            select(CreditTransaction)
            .where(
                CreditTransaction.booking_id == booking_id,
                CreditTransaction.operation_type == operation_type,
            )
            .order_by(CreditTransaction.entry_no.desc())
            .limit(1)
        )
        return await self.session.scalar(stmt)

    async def list_transactions(
        self,
        user_id: UUID,
        operation_type: CreditOperationEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[CreditTransaction], int]:
        base_stmt: Select[tuple[CreditTransaction]] = select(CreditTransaction).where(
            CreditTransaction.user_id == user_id,
        )
        if operation_type is not None:
            base_stmt = base_stmt.where(CreditTransaction.operation_type == operation_type)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = (
            base_stmt.order_by(CreditTransaction.entry_no.desc())
            .limit(limit)
            .offset(offset)
        )
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def list_transactions_in_order(self, user_id: UUID) -> list[CreditTransaction]:
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.entry_no.asc())
        )
        return (await self.session.scalars(stmt)).all()

    async def sum_committed_credits(self, user_id: UUID) -> int:
        """Credits deducted for bookings that are still active and not deleted."""
        stmt = (
            select(func.coalesce(func.sum(-CreditTransaction.amount), 0))
            .join(Booking, Booking.id == CreditTransaction.booking_id)
            .where(
                CreditTransaction.user_id == user_id,
                CreditTransaction.operation_type == CreditOperationEnum.DEDUCT,
                Booking.status == BookingStatusEnum.ACTIVE,
                Booking.deleted_at.is_(None),
            )
        )
        return int((await self.session.scalar(stmt)) or 0)
