"""
Account Store (Domain Logic).

Identity and cached credit balance per account. Every balance change goes
through `adjust_balance`, which guards the non-negative invariant with a
single conditional UPDATE and writes the matching ledger entry in the same
database transaction.

Methods flush but never commit; the caller owns the unit of work.
"""

import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError

from creditcore.app.core.exceptions import (
    DuplicateEmailError,
    InsufficientBalanceError,
    ResourceNotFoundError,
    ValidationError,
)
from creditcore.app.core import security
from creditcore.app.domain.credits.ledger import Ledger
from creditcore.app.models.account import Account
from creditcore.app.models.billing_enums import LedgerReason
from creditcore.app.models.enums import AccountRole
from creditcore.app.models.ledger_entry import LedgerEntry
from creditcore.app.schemas.credits import BalanceReconciliation

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 255


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountStore:

    @staticmethod
    async def create(
        db: AsyncSession,
        email: str,
        password: Optional[str] = None,
        name: Optional[str] = None,
        provider: str = "email",
        provider_id: Optional[str] = None,
        role: AccountRole = AccountRole.USER,
    ) -> Account:
        """
        Create an account with a zero balance.

        Raises:
            DuplicateEmailError: an account with the same email exists
                (compared case-insensitively)
        """
        email = normalize_email(email)

        if await AccountStore.find_by_email(db, email):
            raise DuplicateEmailError(email)

        account = Account(
            email=email,
            hashed_password=security.get_password_hash(password) if password else None,
            name=name,
            provider=provider,
            provider_id=provider_id,
            role=role,
            balance=0,
        )
        db.add(account)

        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            raise DuplicateEmailError(email)

        logger.info("Account %s created (provider=%s)", account.id, provider)
        return account

    @staticmethod
    async def find_by_email(db: AsyncSession, email: str) -> Optional[Account]:
        result = await db.execute(
            select(Account).where(Account.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_by_id(db: AsyncSession, account_id: int) -> Optional[Account]:
        return await db.get(Account, account_id)

    @staticmethod
    async def get(db: AsyncSession, account_id: int) -> Account:
        account = await db.get(Account, account_id)
        if account is None:
            raise ResourceNotFoundError("Account", account_id)
        return account

    @staticmethod
    async def find_by_provider(db: AsyncSession, provider: str, provider_id: str) -> Optional[Account]:
        result = await db.execute(
            select(Account).where(
                Account.provider == provider,
                Account.provider_id == provider_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def adjust_balance(db: AsyncSession, account_id: int, delta: int, reason: str) -> Account:
        """
        Atomically change a balance and record the change in the ledger.

        Flow:
        1. Validate delta and reason tag
        2. Conditional UPDATE: balance = balance + delta WHERE balance + delta >= 0
        3. Zero rows affected -> account missing or balance too low, nothing written
        4. Append the ledger entry in the same transaction
        5. Re-read the account so the caller sees the stored balance

        Args:
            db: Database session (unit of work owned by the caller)
            account_id: Account to change
            delta: Signed, non-zero credit change
            reason: Ledger reason, `tag` or `tag:detail`

        Returns:
            The updated Account

        Raises:
            ValidationError: delta is zero or the reason tag is unknown
            ResourceNotFoundError: no such account
            InsufficientBalanceError: the balance would go negative
        """
        if delta == 0:
            raise ValidationError("Balance delta must be non-zero", details={"delta": delta})

        if not reason or len(reason) > MAX_REASON_LENGTH:
            raise ValidationError("Ledger reason must be 1-255 characters", details={"reason": reason})

        try:
            LedgerReason.parse(reason)
        except ValueError:
            raise ValidationError(f"Unknown ledger reason: {reason}", details={"reason": reason})

        result = await db.execute(
            update(Account)
            .where(Account.id == account_id, Account.balance + delta >= 0)
            .values(balance=Account.balance + delta)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            if await db.get(Account, account_id) is None:
                raise ResourceNotFoundError("Account", account_id)
            logger.info("Balance change %+d rejected for account %s: insufficient credits", delta, account_id)
            raise InsufficientBalanceError(account_id, delta)

        await Ledger.append(db, account_id, delta, reason)

        account = await db.get(Account, account_id, populate_existing=True)
        logger.info("Account %s balance %+d (%s) -> %s", account_id, delta, reason, account.balance)
        return account

    @staticmethod
    async def ledger_balance(db: AsyncSession, account_id: int) -> int:
        return await Ledger.balance(db, account_id)

    @staticmethod
    async def reconcile(db: AsyncSession, account_id: int, repair: bool = False) -> BalanceReconciliation:
        """
        Compare the cached balance with the ledger sum.

        With repair=True a drifted cache is rewritten from the ledger in one
        UPDATE whose value is computed by the database.
        """
        account = await db.get(Account, account_id, populate_existing=True)
        if account is None:
            raise ResourceNotFoundError("Account", account_id)
        ledger_sum = await Ledger.balance(db, account_id)
        cached = account.balance
        consistent = cached == ledger_sum

        repaired = False
        if not consistent:
            logger.warning(
                "Balance drift on account %s: cached=%s ledger=%s",
                account_id, cached, ledger_sum
            )
            if repair:
                ledger_total = (
                    select(func.coalesce(func.sum(LedgerEntry.delta), 0))
                    .where(LedgerEntry.account_id == account_id)
                    .scalar_subquery()
                )
                await db.execute(
                    update(Account)
                    .where(Account.id == account_id)
                    .values(balance=ledger_total)
                    .execution_options(synchronize_session=False)
                )
                account = await db.get(Account, account_id, populate_existing=True)
                ledger_sum = account.balance
                repaired = True

        return BalanceReconciliation(
            account_id=account_id,
            cached_balance=cached,
            ledger_balance=ledger_sum,
            consistent=consistent,
            repaired=repaired,
        )

    @staticmethod
    def verify_password(account: Account, password: str) -> bool:
        return security.verify_password(password, account.hashed_password)
