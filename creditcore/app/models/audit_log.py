"""
Audit Log Database Model.

Tracks security events and balance-affecting actions for dispute resolution.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from creditcore.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking security events and credit operations.

    Events logged:
    - ACCOUNT_CREATED / LOGIN_SUCCESS / LOGIN_FAILED / LOGOUT
    - CREDITS_PURCHASED / PURCHASE_FAILED
    - ADMIN_ADJUSTMENT / BALANCE_RECONCILED
    - REFERRAL_CODE_ISSUED / REFERRAL_REDEEMED / REFERRER_CREDITED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions such as webhooks)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_email = Column(String(255), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Whose balance or identity was affected
    target_account_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # IP address for login tracking
    ip_address = Column(String(50), nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_email}, target={self.target_account_id})>"
