"""
Referral API endpoints.
"""

from typing import List
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from creditcore.app.db.session import get_db
from creditcore.app.core.dependencies import get_current_user, get_client_ip
from creditcore.app.domain.referrals.referral_service import ReferralService
from creditcore.app.schemas.referral import ReferralCodeResponse
from creditcore.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/referrals", tags=["Referrals"])


@router.post("/codes", response_model=ReferralCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_referral_code(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Issue a new single-use referral code owned by the caller."""
    account_id = current_user["account_id"]

    referral = await ReferralService.generate_code(db, account_id)
    await log_event(
        db=db,
        action=AuditAction.REFERRAL_CODE_ISSUED,
        actor_id=account_id,
        target_account_id=account_id,
        metadata={"referral_id": referral.id, "code": referral.code},
        ip_address=get_client_ip(request)
    )
    await db.commit()
    await db.refresh(referral)

    return ReferralCodeResponse.model_validate(referral)


@router.get("/codes", response_model=List[ReferralCodeResponse])
async def list_referral_codes(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Codes issued by the caller, redeemed or not, newest first."""
    referrals = await ReferralService.list_for_referrer(db, current_user["account_id"])
    return [ReferralCodeResponse.model_validate(r) for r in referrals]
