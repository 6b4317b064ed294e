"""
Referral Schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class ReferralCodeResponse(BaseModel):
    """Schema for displaying a referral code."""
    id: int
    code: str
    referrer_account_id: int
    referred_account_id: Optional[int] = None
    credits_granted: int
    signup_bonus_granted: bool
    referrer_credited: bool
    used_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ReferralResult(BaseModel):
    """
    Referral outcome attached to a registration response.

    A failed redemption never fails the registration itself.
    """
    applied: bool
    code: str
    credits_granted: int = 0
    error_code: Optional[str] = None
    message: Optional[str] = None
