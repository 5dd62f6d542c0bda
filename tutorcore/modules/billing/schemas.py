"""Credit ledger schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tutorcore.core.enums import CreditOperationEnum


class CreditAddRequest(BaseModel):
    """Grant credits request."""

    user_id: UUID
    amount: int
    reason: str = Field(min_length=1, max_length=500)
    performed_by: UUID | None = None


class CreditTransactionRead(BaseModel):
    """Credit transaction response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    amount: int
    operation_type: CreditOperationEnum
    reason: str
    performed_by: UUID | None
    booking_id: UUID | None
    balance_before: int
    balance_after: int
    created_at: datetime


class LedgerResultRead(BaseModel):
    """Ledger mutation response schema."""

    model_config = ConfigDict(from_attributes=True)

    balance: int
    transaction: CreditTransactionRead
    duplicate: bool


class BalanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    balance: int
    committed: int


class LedgerVerificationRead(BaseModel):
    """Ledger replay response schema."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    balance: int
    ledger_sum: int
    transactions: int
    chain_intact: bool
    consistent: bool
