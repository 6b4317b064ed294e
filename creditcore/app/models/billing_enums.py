"""
Billing enumerations.
"""

import enum


class TransactionStatus(str, enum.Enum):
    """Purchase transaction status enumeration."""
    PENDING = "pending"  # Created, waiting for the provider to confirm payment
    COMPLETED = "completed"  # Paid and credited (terminal)
    FAILED = "failed"  # Abandoned or rejected (terminal)


class LedgerReason(str, enum.Enum):
    """Ledger entry reason tag. Full reasons are `tag` or `tag:detail`."""
    PURCHASE = "purchase"
    SPEND = "spend"
    REFERRAL_BONUS = "referral-bonus"
    REFERRAL_PAYOUT = "referral-payout"
    ADMIN_ADJUSTMENT = "admin-adjustment"

    @classmethod
    def parse(cls, reason: str) -> "LedgerReason":
        """Return the tag of a full reason string. Raises ValueError for unknown tags."""
        return cls(reason.split(":", 1)[0])
