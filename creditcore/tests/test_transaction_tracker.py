"""
Transaction Tracker tests.

PENDING -> COMPLETED | FAILED, both terminal; external payment id binding
is idempotent and unique.
"""

import pytest

from creditcore.app.core.exceptions import (
    AlreadyBoundError,
    AlreadyFinalizedError,
    ResourceNotFoundError,
    ValidationError,
)
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.domain.payments.transaction_tracker import TransactionTracker
from creditcore.app.models.billing_enums import TransactionStatus


@pytest.fixture
async def account(db_session):
    account = await AccountStore.create(db_session, "buyer@example.com")
    await db_session.commit()
    return account


async def _pending(db, account_id, pack_id="10-credits"):
    txn = await TransactionTracker.create_pending(db, account_id, pack_id, 10, 500, "USD")
    await db.commit()
    return txn


@pytest.mark.asyncio
async def test_create_pending(db_session, account):
    txn = await _pending(db_session, account.id)

    assert txn.status == TransactionStatus.PENDING
    assert txn.currency == "usd"
    assert txn.external_payment_id is None
    assert txn.credits_requested == 10


@pytest.mark.asyncio
async def test_create_pending_validation(db_session, account):
    with pytest.raises(ValidationError):
        await TransactionTracker.create_pending(db_session, account.id, "10-credits", 0, 500, "usd")
    with pytest.raises(ValidationError):
        await TransactionTracker.create_pending(db_session, account.id, "10-credits", 10, -1, "usd")
    with pytest.raises(ValidationError):
        await TransactionTracker.create_pending(db_session, account.id, "10-credits", 10, 500, "dollars")


@pytest.mark.asyncio
async def test_bind_external_id_is_idempotent(db_session, account):
    txn = await _pending(db_session, account.id)

    bound = await TransactionTracker.bind_external_id(db_session, txn.id, "pi_abc")
    await db_session.commit()
    again = await TransactionTracker.bind_external_id(db_session, txn.id, "pi_abc")

    assert bound.external_payment_id == again.external_payment_id == "pi_abc"
    assert (await TransactionTracker.find_by_external_id(db_session, "pi_abc")).id == txn.id
    assert await TransactionTracker.find_by_external_id(db_session, "pi_unknown") is None


@pytest.mark.asyncio
async def test_bind_conflicts_raise_already_bound(db_session, account):
    first = await _pending(db_session, account.id)
    second = await _pending(db_session, account.id)
    await TransactionTracker.bind_external_id(db_session, first.id, "pi_first")
    await db_session.commit()

    # Different id on an already bound transaction
    with pytest.raises(AlreadyBoundError):
        await TransactionTracker.bind_external_id(db_session, first.id, "pi_other")

    # Same id on another transaction
    with pytest.raises(AlreadyBoundError):
        await TransactionTracker.bind_external_id(db_session, second.id, "pi_first")


@pytest.mark.asyncio
async def test_complete_once_then_noop(db_session, account):
    txn = await _pending(db_session, account.id)

    completed, transitioned = await TransactionTracker.try_complete(db_session, txn.id)
    await db_session.commit()
    assert transitioned
    assert completed.status == TransactionStatus.COMPLETED
    assert completed.completed_at is not None

    again, transitioned = await TransactionTracker.try_complete(db_session, txn.id)
    assert not transitioned
    assert again.status == TransactionStatus.COMPLETED

    assert (await TransactionTracker.complete(db_session, txn.id)).status == TransactionStatus.COMPLETED


@pytest.mark.asyncio
async def test_failed_is_terminal(db_session, account):
    txn = await _pending(db_session, account.id)

    failed = await TransactionTracker.fail(db_session, txn.id, "checkout abandoned")
    await db_session.commit()
    assert failed.status == TransactionStatus.FAILED
    assert failed.failure_reason == "checkout abandoned"

    # Failing again is a no-op
    assert (await TransactionTracker.fail(db_session, txn.id, "again")).failure_reason == "checkout abandoned"

    with pytest.raises(AlreadyFinalizedError):
        await TransactionTracker.complete(db_session, txn.id)


@pytest.mark.asyncio
async def test_cannot_fail_completed_transaction(db_session, account):
    txn = await _pending(db_session, account.id)
    await TransactionTracker.complete(db_session, txn.id)
    await db_session.commit()

    with pytest.raises(AlreadyFinalizedError) as exc_info:
        await TransactionTracker.fail(db_session, txn.id, "late failure")
    assert exc_info.value.error_code == "ERR_TXN_001"


@pytest.mark.asyncio
async def test_unknown_transaction(db_session):
    with pytest.raises(ResourceNotFoundError):
        await TransactionTracker.complete(db_session, 999)
    with pytest.raises(ResourceNotFoundError):
        await TransactionTracker.fail(db_session, 999, "nope")


@pytest.mark.asyncio
async def test_list_for_account_newest_first(db_session, account):
    first = await _pending(db_session, account.id, "10-credits")
    second = await _pending(db_session, account.id, "25-credits")

    transactions = await TransactionTracker.list_for_account(db_session, account.id)

    assert [t.id for t in transactions] == [second.id, first.id]
