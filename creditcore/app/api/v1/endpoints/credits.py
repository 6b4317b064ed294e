"""
Credit API endpoints.

Balance and ledger visibility, and the spend interface used before paid
features run.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from creditcore.app.db.session import get_db
from creditcore.app.core.dependencies import get_current_user
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.domain.credits.ledger import Ledger
from creditcore.app.domain.credits.spend import SpendService
from creditcore.app.schemas.credits import (
    BalanceResponse,
    DebitRequest,
    DebitResult,
    LedgerEntryResponse,
    LedgerHistoryResponse,
)

router = APIRouter(prefix="/credits", tags=["Credits"])


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    account = await AccountStore.get(db, current_user["account_id"])
    return BalanceResponse(account_id=account.id, balance=account.balance)


@router.get("/ledger", response_model=LedgerHistoryResponse)
async def get_ledger(
    limit: int = Query(50, ge=1, le=500),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Most recent ledger entries first."""
    account_id = current_user["account_id"]
    entries = await Ledger.history(db, account_id, limit).to_list()
    return LedgerHistoryResponse(
        account_id=account_id,
        entries=[LedgerEntryResponse.model_validate(e) for e in entries]
    )


@router.post("/debit", response_model=DebitResult)
async def debit_credit(
    debit: DebitRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Spend one credit.

    Returns 402 ERR_CREDITS_EXHAUSTED when the balance is zero.
    """
    return await SpendService.debit(db, current_user["account_id"], debit.reason)
