"""
Account database model.

Holds identity and the cached credit balance of a customer.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, CheckConstraint, Index
from sqlalchemy.sql import func
from creditcore.app.db.session import Base
from creditcore.app.models.enums import AccountRole


class Account(Base):
    """
    Account model.

    `balance` is a cache of the sum of this account's ledger entries and is
    only ever changed through AccountStore.adjust_balance (or a reconciliation
    repair). Email is stored lower-cased so the unique index is case-insensitive.
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=True)  # NULL for external sign-in
    name = Column(String(255), nullable=True)

    # External identity provider (e.g. google)
    provider = Column(String(50), default="email", nullable=False)
    provider_id = Column(String(255), nullable=True)

    role = Column(Enum(AccountRole), default=AccountRole.USER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    balance = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        Index("ix_accounts_provider", "provider", "provider_id"),
    )

    def __repr__(self):
        return f"<Account(id={self.id}, email='{self.email}', balance={self.balance})>"
