"""
Ledger (Domain Logic).

Append-only history of signed credit deltas. The sum of an account's
entries is the authoritative balance; `accounts.balance` is a cache of it.
"""

from typing import AsyncIterator, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from creditcore.app.core.config import settings
from creditcore.app.core.exceptions import ValidationError
from creditcore.app.models.ledger_entry import LedgerEntry
from creditcore.app.models.billing_enums import LedgerReason


class LedgerHistory:
    """
    Most-recent-first view over one account's ledger.

    Iterating fetches keyset pages of `page_size` rows lazily and stops after
    `limit` entries. Every `async for` starts again from the newest entry.
    """

    def __init__(self, db: AsyncSession, account_id: int, limit: int, page_size: Optional[int] = None):
        self.db = db
        self.account_id = account_id
        self.limit = limit
        self.page_size = page_size or settings.ledger_page_size

    async def __aiter__(self) -> AsyncIterator[LedgerEntry]:
        remaining = self.limit
        last_id = None

        while remaining > 0:
            query = (
                select(LedgerEntry)
                .where(LedgerEntry.account_id == self.account_id)
                .order_by(LedgerEntry.id.desc())
                .limit(min(self.page_size, remaining))
            )
            if last_id is not None:
                query = query.where(LedgerEntry.id < last_id)

            result = await self.db.execute(query)
            page = result.scalars().all()

            for entry in page:
                yield entry

            if len(page) < min(self.page_size, remaining):
                return

            remaining -= len(page)
            last_id = page[-1].id

    async def to_list(self) -> List[LedgerEntry]:
        return [entry async for entry in self]


class Ledger:

    @staticmethod
    async def append(db: AsyncSession, account_id: int, delta: int, reason: str) -> LedgerEntry:
        """
        Record a balance change.

        Only AccountStore.adjust_balance calls this, after its conditional
        balance update succeeded in the same database transaction.
        """
        if delta == 0:
            raise ValidationError("Ledger delta must be non-zero")

        try:
            kind = LedgerReason.parse(reason)
        except ValueError:
            raise ValidationError(f"Unknown ledger reason: {reason}", details={"reason": reason})

        entry = LedgerEntry(
            account_id=account_id,
            delta=delta,
            kind=kind,
            reason=reason
        )
        db.add(entry)
        await db.flush()

        return entry

    @staticmethod
    def history(db: AsyncSession, account_id: int, limit: int = 50) -> LedgerHistory:
        if limit < 1:
            raise ValidationError("History limit must be positive", details={"limit": limit})
        return LedgerHistory(db, account_id, limit)

    @staticmethod
    async def balance(db: AsyncSession, account_id: int) -> int:
        """Sum of all deltas for the account (0 when it has no entries)."""
        result = await db.execute(
            select(func.coalesce(func.sum(LedgerEntry.delta), 0))
            .where(LedgerEntry.account_id == account_id)
        )
        return int(result.scalar_one())
