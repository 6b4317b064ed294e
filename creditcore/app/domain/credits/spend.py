"""
Spend / Credit interface for feature collaborators.

Each call is a complete unit of work: it commits on success and rolls
back on any failure before re-raising.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from creditcore.app.core.exceptions import ValidationError
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.models.account import Account
from creditcore.app.models.billing_enums import LedgerReason
from creditcore.app.schemas.credits import DebitResult

DEBIT_COST = 1


class SpendService:

    @staticmethod
    async def debit(db: AsyncSession, account_id: int, reason: str) -> DebitResult:
        """
        Take one credit for a paid feature call.

        Raises:
            InsufficientBalanceError: balance is 0; nothing is recorded
        """
        ledger_reason = f"{LedgerReason.SPEND.value}:{reason}"
        try:
            account = await AccountStore.adjust_balance(db, account_id, -DEBIT_COST, ledger_reason)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        return DebitResult(
            account_id=account.id,
            charged=DEBIT_COST,
            balance=account.balance,
            reason=ledger_reason
        )

    @staticmethod
    async def credit(db: AsyncSession, account_id: int, amount: int, reason: str) -> Account:
        """Grant `amount` credits with a full ledger reason (e.g. "purchase:10-credits")."""
        if amount <= 0:
            raise ValidationError("Credit amount must be positive", details={"amount": amount})

        try:
            account = await AccountStore.adjust_balance(db, account_id, amount, reason)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        return account
