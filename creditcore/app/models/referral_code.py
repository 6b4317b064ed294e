"""
Referral Code database model.

Single-use tokens linking a referring account to a referred account.
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from creditcore.app.db.session import Base


class ReferralCode(Base):
    """
    Referral Code model.

    A code moves from unredeemed (referred_account_id IS NULL) to redeemed
    exactly once. The (referrer, referred) unique constraint allows at most one
    redeemed code per ordered pair; unredeemed codes carry NULL and never collide.
    """
    __tablename__ = "referral_codes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    code = Column(String(32), unique=True, index=True, nullable=False)

    referrer_account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)
    referred_account_id = Column(Integer, ForeignKey('accounts.id'), nullable=True, index=True)

    # Rewards
    credits_granted = Column(Integer, default=0, nullable=False)
    signup_bonus_granted = Column(Boolean, default=False, nullable=False)
    referrer_credited = Column(Boolean, default=False, nullable=False)

    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("referrer_account_id", "referred_account_id", name="uq_referral_codes_pair"),
        CheckConstraint("referrer_account_id <> referred_account_id", name="ck_referral_codes_not_self"),
    )

    def __repr__(self):
        return f"<ReferralCode(code='{self.code}', referrer={self.referrer_account_id}, referred={self.referred_account_id})>"
