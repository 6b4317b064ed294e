"""
Ledger Entry database model.

Immutable credit movement records.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, String, CheckConstraint, Index
from sqlalchemy.sql import func
from creditcore.app.db.session import Base
from creditcore.app.models.billing_enums import LedgerReason


class LedgerEntry(Base):
    """
    Ledger Entry model.

    Immutable record of a signed balance change.
    The sum of an account's deltas is the authoritative balance.
    NO updates or deletions allowed.
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)

    delta = Column(Integer, nullable=False)
    kind = Column(Enum(LedgerReason, values_callable=lambda e: [m.value for m in e]), nullable=False)
    reason = Column(String(255), nullable=False)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("delta <> 0", name="ck_ledger_entries_delta_non_zero"),
        Index("ix_ledger_entries_account_id_id", "account_id", "id"),
    )

    def __repr__(self):
        return f"<LedgerEntry(id={self.id}, account_id={self.account_id}, delta={self.delta}, reason='{self.reason}')>"
