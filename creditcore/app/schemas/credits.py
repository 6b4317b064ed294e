"""
Credit Schemas.

Balance, ledger, spend and operator adjustment records.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from creditcore.app.models.billing_enums import LedgerReason


class BalanceResponse(BaseModel):
    """Schema for GET /credits/balance."""
    account_id: int
    balance: int


class LedgerEntryResponse(BaseModel):
    """Schema for displaying a ledger entry."""
    id: int
    delta: int
    kind: LedgerReason
    reason: str
    created_at: datetime

    class Config:
        from_attributes = True


class LedgerHistoryResponse(BaseModel):
    account_id: int
    entries: List[LedgerEntryResponse]


class DebitRequest(BaseModel):
    """
    Schema for spending one credit.

    `reason` names the paid feature (e.g. "analyze-answer"); it is recorded
    in the ledger as "spend:<reason>".
    """
    reason: str = Field(..., min_length=1, max_length=200, pattern=r"^[A-Za-z0-9_.:\-]+$")


class DebitResult(BaseModel):
    """Outcome of a successful debit."""
    account_id: int
    charged: int = Field(..., description="Credits taken by this debit")
    balance: int = Field(..., description="Balance after the debit")
    reason: str = Field(..., description="Ledger reason recorded")


class AdjustRequest(BaseModel):
    """Schema for an operator balance adjustment."""
    delta: int = Field(..., description="Signed, non-zero credit change")
    note: Optional[str] = Field(default=None, max_length=200, description="Recorded as admin-adjustment:<note>")


class BalanceReconciliation(BaseModel):
    """Cached balance compared with the ledger sum."""
    account_id: int
    cached_balance: int
    ledger_balance: int
    consistent: bool
    repaired: bool = False
