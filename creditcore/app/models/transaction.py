"""
Transaction database model.

Records a credit-pack purchase attempt and its terminal outcome.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from creditcore.app.db.session import Base
from creditcore.app.models.billing_enums import TransactionStatus


class Transaction(Base):
    """
    Transaction model.

    Follows a strict workflow: PENDING -> COMPLETED or PENDING -> FAILED.
    `external_payment_id` is the payment provider's identifier (checkout
    session or payment intent). It is NULL until bound and unique afterwards,
    which makes it the idempotency key for webhook deliveries.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)

    # What was bought
    pack_id = Column(String(50), nullable=False)
    credits_requested = Column(Integer, nullable=False)

    # Financials (minor units, e.g. cents)
    amount_paid_minor_units = Column(Integer, nullable=False)
    currency = Column(String(3), default="usd", nullable=False)

    # Status
    status = Column(
        Enum(TransactionStatus, values_callable=lambda e: [m.value for m in e]),
        default=TransactionStatus.PENDING,
        nullable=False,
        index=True
    )
    failure_reason = Column(String(255), nullable=True)

    # Provider linkage
    external_payment_id = Column(String(255), unique=True, index=True, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Transaction(id={self.id}, status='{self.status.value}', pack='{self.pack_id}')>"
