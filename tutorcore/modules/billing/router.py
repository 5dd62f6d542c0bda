"""Credit ledger API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from tutorcore.core.enums import CreditOperationEnum
from tutorcore.modules.billing.schemas import (
    BalanceRead,
    CreditAddRequest,
    CreditTransactionRead,
    LedgerResultRead,
    LedgerVerificationRead,
)
from tutorcore.modules.billing.service import CreditLedgerService, get_credit_ledger_service
from tutorcore.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/credits", tags=["credits"])


@router.post("/add", response_model=LedgerResultRead, status_code=status.HTTP_201_CREATED)
async def add_credits(
    payload: CreditAddRequest,
    service: CreditLedgerService = Depends(get_credit_ledger_service),
) -> LedgerResultRead:
    """Grant credits to a user (admin)."""
    result = await service.add(
        user_id=payload.user_id,
        amount=payload.amount,
        reason=payload.reason,
        performed_by=payload.performed_by,
    )
    return LedgerResultRead.model_validate(result)


@router.get("/{user_id}", response_model=BalanceRead)
async def get_balance(
    user_id: UUID,
    service: CreditLedgerService = Depends(get_credit_ledger_service),
) -> BalanceRead:
    """Return current balance and committed credits."""
    summary = await service.get_balance(user_id)
    return BalanceRead.model_validate(summary)


@router.get("/{user_id}/transactions", response_model=Page[CreditTransactionRead])
async def list_transactions(
    user_id: UUID,
    operation_type: CreditOperationEnum | None = None,
    pagination=Depends(get_pagination_params),
    service: CreditLedgerService = Depends(get_credit_ledger_service),
) -> Page[CreditTransactionRead]:
    """List credit history for a user."""
    items, total = await service.list_transactions(
        user_id=user_id,
        operation_type=operation_type,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    serialized = [CreditTransactionRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{user_id}/verify", response_model=LedgerVerificationRead)
async def verify_ledger(
    user_id: UUID,
    service: CreditLedgerService = Depends(get_credit_ledger_service),
) -> LedgerVerificationRead:
    """Replay transactions and compare with the stored balance."""
    result = await service.verify_ledger(user_id)
    return LedgerVerificationRead.model_validate(result)
