"""Credit ledger business logic layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorcore.core.config import get_settings
from tutorcore.core.database import get_db_session
from tutorcore.core.enums import CreditOperationEnum
from tutorcore.core.metrics import CREDITS_TOTAL
from tutorcore.modules.audit.repository import AuditRepository
from tutorcore.modules.billing.models import Credit, CreditTransaction
from tutorcore.modules.billing.repository import BillingRepository
from tutorcore.modules.identity.repository import IdentityRepository
from tutorcore.shared.exceptions import (
    BalanceCeilingExceededException,
    BusinessRuleException,
    InsufficientBalanceException,
    InvalidAmountException,
    NotFoundException,
    OrphanReferenceException,
)

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass(slots=True)
class LedgerResult:
    """Outcome of one ledger mutation."""

    balance: int
    transaction: CreditTransaction
    duplicate: bool = False


@dataclass(slots=True)
class BalanceSummary:
    user_id: UUID
    balance: int
    committed: int


@dataclass(slots=True)
class LedgerVerification:
    """Result of replaying a user's transactions against the stored balance."""

    user_id: UUID
    balance: int
    ledger_sum: int
    transactions: int
    chain_intact: bool

    @property
    def consistent(self) -> bool:
        return self.chain_intact and self.balance == self.ledger_sum


class CreditLedgerService:
    """Owns every write to credit balances.

    Mutations lock the user's credit row before reading the balance, so
    concurrent writes for one user serialize while different users never
    contend. Nothing here commits; callers own the transaction.
    """

    def __init__(
        self,
        repository: BillingRepository,
        identity_repository: IdentityRepository,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.identity_repository = identity_repository
        self.audit_repository = audit_repository

    async def add(
        self,
        user_id: UUID,
        amount: int,
        reason: str,
        performed_by: UUID | None = None,
    ) -> LedgerResult:
        """Grant credits to a user."""
        self._validate_amount(amount)
        if amount > settings.credit_max_grant_amount:
            raise InvalidAmountException(
                f"Amount must not exceed {settings.credit_max_grant_amount} per grant",
            )
        reason = (reason or "").strip()
        if not reason:
            raise BusinessRuleException("Reason is required for credit grants")

        await self._require_live_user(user_id, "User")
        if performed_by is not None:
            await self._require_live_user(performed_by, "Performer")

        credit = await self.repository.get_credit_for_update(user_id)
        self._check_ceiling(credit, amount)
        transaction = await self._apply(
            credit,
            delta=amount,
            operation_type=CreditOperationEnum.ADD,
            reason=reason,
            performed_by=performed_by,
            booking_id=None,
        )
        await self.audit_repository.create_audit_log(
            actor_id=performed_by,
            action="credits.add",
            entity_type="credit",
            entity_id=str(user_id),
            payload={
                "amount": amount,
                "reason": reason,
                "balance_before": transaction.balance_before,
                "balance_after": transaction.balance_after,
            },
        )
        CREDITS_TOTAL.labels(operation=CreditOperationEnum.ADD.value).inc(amount)
        logger.info(
            "Credits added: user_id=%s amount=%s balance=%s",
            user_id,
            amount,
            credit.balance,
        )
        return LedgerResult(balance=credit.balance, transaction=transaction)

    async def deduct(
        self,
        user_id: UUID,
        amount: int,
        booking_id: UUID | None,
        reason: str = "Lesson booking",
        performed_by: UUID | None = None,
    ) -> LedgerResult:
        """Take credits from a user; never lets the balance go negative."""
        self._validate_amount(amount)

        credit = await self.repository.get_credit_for_update(user_id)
        if credit.balance - amount < 0:
            raise InsufficientBalanceException(
                f"Insufficient credits: balance {credit.balance}, required {amount}",
            )
        transaction = await self._apply(
            credit,
            delta=-amount,
            operation_type=CreditOperationEnum.DEDUCT,
            reason=reason,
            performed_by=performed_by,
            booking_id=booking_id,
        )
        CREDITS_TOTAL.labels(operation=CreditOperationEnum.DEDUCT.value).inc(amount)
        logger.info(
            "Credits deducted: user_id=%s amount=%s booking_id=%s balance=%s",
            user_id,
            amount,
            booking_id,
            credit.balance,
        )
        return LedgerResult(balance=credit.balance, transaction=transaction)

    async def refund(
        self,
        user_id: UUID,
        amount: int,
        booking_id: UUID,
        reason: str = "Booking cancelled",
        performed_by: UUID | None = None,
    ) -> LedgerResult:
        """Return credits for a booking at most once.

        A second refund for the same booking changes nothing and returns the
        earlier transaction with ``duplicate`` set. Giving back no more than
        was deducted for the booking is exempt from the balance ceiling.
        """
        self._validate_amount(amount)

        credit = await self.repository.get_credit_for_update(user_id)
        existing = await self.repository.get_booking_transaction(
            booking_id,
            CreditOperationEnum.REFUND,
        )
        if existing is not None:
            logger.info("Refund already recorded: booking_id=%s", booking_id)
            return LedgerResult(balance=credit.balance, transaction=existing, duplicate=True)

        if amount > await self.deducted_for_booking(booking_id):
            self._check_ceiling(credit, amount)
        transaction = await self._apply(
            credit,
            delta=amount,
            operation_type=CreditOperationEnum.REFUND,
            reason=reason,
            performed_by=performed_by,
            booking_id=booking_id,
        )
        CREDITS_TOTAL.labels(operation=CreditOperationEnum.REFUND.value).inc(amount)
        logger.info(
            "Credits refunded: user_id=%s amount=%s booking_id=%s balance=%s",
            user_id,
            amount,
            booking_id,
            credit.balance,
        )
        return LedgerResult(balance=credit.balance, transaction=transaction)

    async def deducted_for_booking(self, booking_id: UUID) -> int:
        """Credits taken when the booking was activated; 0 for free lessons."""
        transaction = await self.repository.get_booking_transaction(
            booking_id,
            CreditOperationEnum.DEDUCT,
        )
        return -transaction.amount if transaction is not None else 0

    async def get_balance(self, user_id: UUID) -> BalanceSummary:
        """Return balance and credits held by active bookings."""
        user = await self.identity_repository.get_user_by_id(user_id)
        if user is None:
            raise NotFoundException("User not found")

        credit = await self.repository.get_credit(user_id)
        committed = await self.repository.sum_committed_credits(user_id)
        return BalanceSummary(
            user_id=user_id,
            balance=credit.balance if credit is not None else 0,
            committed=committed,
        )

    async def list_transactions(
        self,
        user_id: UUID,
        operation_type: CreditOperationEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[CreditTransaction], int]:
        """List user transactions, newest first."""
        return await self.repository.list_transactions(
            user_id=user_id,
            operation_type=operation_type,
            limit=min(limit, settings.credit_history_max_limit),
            offset=offset,
        )

    async def verify_ledger(self, user_id: UUID) -> LedgerVerification:
        """Replay the transaction history and compare it with the stored balance."""
        credit = await self.repository.get_credit(user_id)
        transactions = await self.repository.list_transactions_in_order(user_id)

        running = 0
        chain_intact = True
        for transaction in transactions:
            if transaction.balance_before != running:
                chain_intact = False
            running += transaction.amount
            if transaction.balance_after != running:
                chain_intact = False

        result = LedgerVerification(
            user_id=user_id,
            balance=credit.balance if credit is not None else 0,
            ledger_sum=running,
            transactions=len(transactions),
            chain_intact=chain_intact,
        )
        if not result.consistent:
            logger.warning(
                "Ledger mismatch: user_id=%s balance=%s ledger_sum=%s chain_intact=%s",
                user_id,
                result.balance,
                result.ledger_sum,
                chain_intact,
            )
        return result

    async def _apply(
        self,
        credit: Credit,
        delta: int,
        operation_type: CreditOperationEnum,
        reason: str,
        performed_by: UUID | None,
        booking_id: UUID | None,
    ) -> CreditTransaction:
        balance_before = credit.balance
        balance_after = balance_before + delta
        await self.repository.set_balance(credit, balance_after)
        return await self.repository.create_transaction(
            user_id=credit.user_id,
            amount=delta,
            operation_type=operation_type,
            reason=reason,
            performed_by=performed_by,
            booking_id=booking_id,
            balance_before=balance_before,
            balance_after=balance_after,
        )

    @staticmethod
    def _validate_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountException("Amount must be a positive integer")

    @staticmethod
    def _check_ceiling(credit: Credit, amount: int) -> None:
        if credit.balance + amount > settings.credit_max_balance:
            raise BalanceCeilingExceededException(
                f"Balance would exceed maximum of {settings.credit_max_balance}",
            )

    async def _require_live_user(self, user_id: UUID, label: str) -> None:
        user = await self.identity_repository.get_user_by_id(user_id)
        if user is None or user.is_deleted:
            raise OrphanReferenceException(f"{label} not found or deleted")


def build_credit_ledger(session: AsyncSession) -> CreditLedgerService:
    return CreditLedgerService(
        BillingRepository(session),
        IdentityRepository(session),
        AuditRepository(session),
    )


async def get_credit_ledger_service(
    session: AsyncSession = Depends(get_db_session),
) -> CreditLedgerService:
    """Dependency provider for credit ledger service."""
    return build_credit_ledger(session)
