"""
Transaction Tracker (Domain Logic).

Purchase attempts and their terminal outcome. Strict workflow:
PENDING -> COMPLETED or PENDING -> FAILED, both terminal.

Every transition is a conditional UPDATE on `status = 'pending'`, so two
concurrent callers can never both move the same transaction.
"""

import logging
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError

from creditcore.app.core.exceptions import (
    AlreadyBoundError,
    AlreadyFinalizedError,
    ResourceNotFoundError,
    ValidationError,
)
from creditcore.app.models.billing_enums import TransactionStatus
from creditcore.app.models.transaction import Transaction

logger = logging.getLogger(__name__)


class TransactionTracker:

    @staticmethod
    async def create_pending(
        db: AsyncSession,
        account_id: int,
        pack_id: str,
        credits_requested: int,
        amount_paid_minor: int,
        currency: str = "usd",
    ) -> Transaction:
        if credits_requested <= 0:
            raise ValidationError("credits_requested must be positive", details={"credits_requested": credits_requested})
        if amount_paid_minor < 0:
            raise ValidationError("Amount cannot be negative", details={"amount": amount_paid_minor})
        if len(currency) != 3:
            raise ValidationError("Currency must be a 3-letter ISO code", details={"currency": currency})

        txn = Transaction(
            account_id=account_id,
            pack_id=pack_id,
            credits_requested=credits_requested,
            amount_paid_minor_units=amount_paid_minor,
            currency=currency.lower(),
            status=TransactionStatus.PENDING,
        )
        db.add(txn)
        await db.flush()

        logger.info("Transaction %s created for account %s (pack=%s)", txn.id, account_id, pack_id)
        return txn

    @staticmethod
    async def get(db: AsyncSession, transaction_id: int) -> Transaction:
        txn = await db.get(Transaction, transaction_id, populate_existing=True)
        if txn is None:
            raise ResourceNotFoundError("Transaction", transaction_id)
        return txn

    @staticmethod
    async def bind_external_id(db: AsyncSession, transaction_id: int, external_payment_id: str) -> Transaction:
        """
        Attach the provider's payment identifier.

        Re-binding the same id is a no-op. A different id on this transaction,
        or this id on another transaction, raises AlreadyBoundError.
        """
        txn = await TransactionTracker.get(db, transaction_id)

        if txn.external_payment_id == external_payment_id:
            return txn
        if txn.external_payment_id is not None:
            raise AlreadyBoundError(transaction_id, external_payment_id)

        owner = await TransactionTracker.find_by_external_id(db, external_payment_id)
        if owner is not None:
            raise AlreadyBoundError(owner.id, external_payment_id)

        try:
            result = await db.execute(
                update(Transaction)
                .where(
                    Transaction.id == transaction_id,
                    Transaction.external_payment_id.is_(None)
                )
                .values(external_payment_id=external_payment_id)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError:
            raise AlreadyBoundError(transaction_id, external_payment_id)

        txn = await TransactionTracker.get(db, transaction_id)
        if result.rowcount == 0 and txn.external_payment_id != external_payment_id:
            raise AlreadyBoundError(transaction_id, external_payment_id)

        return txn

    @staticmethod
    async def find_by_external_id(db: AsyncSession, external_payment_id: str) -> Optional[Transaction]:
        result = await db.execute(
            select(Transaction)
            .where(Transaction.external_payment_id == external_payment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def try_complete(db: AsyncSession, transaction_id: int) -> Tuple[Transaction, bool]:
        """
        Move a pending transaction to COMPLETED.

        Returns:
            (transaction, transitioned). transitioned is True only for the
            caller whose UPDATE matched the pending row.

        Raises:
            AlreadyFinalizedError: the transaction has FAILED
        """
        result = await db.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING
            )
            .values(status=TransactionStatus.COMPLETED, completed_at=func.now())
            .execution_options(synchronize_session=False)
        )

        txn = await TransactionTracker.get(db, transaction_id)
        if result.rowcount == 1:
            return txn, True

        if txn.status == TransactionStatus.FAILED:
            raise AlreadyFinalizedError(transaction_id, txn.status.value)
        return txn, False

    @staticmethod
    async def complete(db: AsyncSession, transaction_id: int) -> Transaction:
        txn, _ = await TransactionTracker.try_complete(db, transaction_id)
        return txn

    @staticmethod
    async def fail(db: AsyncSession, transaction_id: int, reason: str) -> Transaction:
        """
        Move a pending transaction to FAILED. No-op if it already failed.

        Raises:
            AlreadyFinalizedError: the transaction has COMPLETED
        """
        result = await db.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING
            )
            .values(
                status=TransactionStatus.FAILED,
                failure_reason=reason[:255],
                failed_at=func.now()
            )
            .execution_options(synchronize_session=False)
        )

        txn = await TransactionTracker.get(db, transaction_id)
        if result.rowcount == 0 and txn.status == TransactionStatus.COMPLETED:
            raise AlreadyFinalizedError(transaction_id, txn.status.value)

        if result.rowcount == 1:
            logger.info("Transaction %s failed: %s", transaction_id, reason)
        return txn

    @staticmethod
    async def list_for_account(db: AsyncSession, account_id: int, limit: int = 50) -> List[Transaction]:
        result = await db.execute(
            select(Transaction)
            .where(Transaction.account_id == account_id)
            .order_by(Transaction.id.desc())
            .limit(limit)
        )
        return result.scalars().all()
