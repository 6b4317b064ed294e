"""
Admin API Endpoints.

Operator tools for balances, ledger inspection, referral payouts and the
audit trail. Every mutation is audited in the same unit of work.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from creditcore.app.db.session import get_db
from creditcore.app.core.dependencies import get_client_ip
from creditcore.app.core.guards import require_admin
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.domain.credits.ledger import Ledger
from creditcore.app.domain.referrals.referral_service import ReferralService
from creditcore.app.models.billing_enums import LedgerReason
from creditcore.app.schemas.admin import AdjustmentResponse, AuditLogResponse, AuditTrailResponse
from creditcore.app.schemas.credits import (
    AdjustRequest,
    BalanceReconciliation,
    LedgerEntryResponse,
    LedgerHistoryResponse,
)
from creditcore.app.schemas.referral import ReferralCodeResponse
from creditcore.app.services.audit import log_event, AuditAction, get_audit_trail

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/accounts/{account_id}/adjust", response_model=AdjustmentResponse)
async def adjust_account_balance(
    account_id: int,
    adjustment: AdjustRequest,
    request: Request,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Grant or remove credits by hand (admin-only).

    Recorded as "admin-adjustment[:note]". A removal that would take the
    balance below zero is rejected with 402.
    """
    reason = LedgerReason.ADMIN_ADJUSTMENT.value
    if adjustment.note:
        reason = f"{reason}:{adjustment.note}"

    account = await AccountStore.adjust_balance(db, account_id, adjustment.delta, reason)
    audit_log = await log_event(
        db=db,
        action=AuditAction.ADMIN_ADJUSTMENT,
        actor_id=admin["account_id"],
        actor_email=admin.get("sub"),
        target_account_id=account_id,
        metadata={"delta": adjustment.delta, "reason": reason, "balance": account.balance},
        ip_address=get_client_ip(request)
    )
    await db.commit()

    return AdjustmentResponse(
        account_id=account_id,
        delta=adjustment.delta,
        reason=reason,
        balance=account.balance,
        audit_log_id=audit_log.id
    )


@router.get("/accounts/{account_id}/reconcile", response_model=BalanceReconciliation)
async def reconcile_account_balance(
    account_id: int,
    request: Request,
    repair: bool = Query(False, description="Rewrite the cached balance from the ledger"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Compare the cached balance with the ledger sum (admin-only)."""
    result = await AccountStore.reconcile(db, account_id, repair=repair)

    if result.repaired:
        await log_event(
            db=db,
            action=AuditAction.BALANCE_RECONCILED,
            actor_id=admin["account_id"],
            actor_email=admin.get("sub"),
            target_account_id=account_id,
            metadata=result.model_dump(),
            ip_address=get_client_ip(request)
        )
        await db.commit()

    return result


@router.get("/accounts/{account_id}/ledger", response_model=LedgerHistoryResponse)
async def get_account_ledger(
    account_id: int,
    limit: int = Query(100, ge=1, le=1000),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await AccountStore.get(db, account_id)
    entries = await Ledger.history(db, account_id, limit).to_list()
    return LedgerHistoryResponse(
        account_id=account_id,
        entries=[LedgerEntryResponse.model_validate(e) for e in entries]
    )


@router.post("/referrals/{referral_id}/credit-referrer", response_model=ReferralCodeResponse)
async def credit_referrer(
    referral_id: int,
    request: Request,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Pay the referrer of a redeemed code (admin-only).

    Idempotent: a referrer already paid is returned unchanged.
    """
    referral, credited = await ReferralService.try_credit_referrer(db, referral_id)

    if credited:
        await log_event(
            db=db,
            action=AuditAction.REFERRER_CREDITED,
            actor_id=admin["account_id"],
            actor_email=admin.get("sub"),
            target_account_id=referral.referrer_account_id,
            metadata={"referral_id": referral.id, "trigger": "manual"},
            ip_address=get_client_ip(request)
        )
        await db.commit()

    return ReferralCodeResponse.model_validate(referral)


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    target_account_id: Optional[int] = Query(None, description="Filter by affected account ID"),
    action: Optional[str] = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=1000, description="Max records to return"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Retrieve audit trail logs (admin-only).

    Supports filtering by target account and action type.
    """
    logs = await get_audit_trail(
        db=db,
        target_account_id=target_account_id,
        action=action,
        limit=limit
    )

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
