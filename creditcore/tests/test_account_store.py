"""
Account Store tests.

Covers account creation, case-insensitive email identity and the
conditional balance update that keeps balance == sum(ledger deltas).
"""

import pytest
from sqlalchemy import update

from creditcore.app.core.exceptions import (
    DuplicateEmailError,
    InsufficientBalanceError,
    ResourceNotFoundError,
    ValidationError,
)
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.models.account import Account
from creditcore.app.models.billing_enums import LedgerReason


@pytest.mark.asyncio
async def test_create_starts_at_zero_balance(db_session):
    account = await AccountStore.create(db_session, "Alice@Example.com", password="password123", name="Alice")
    await db_session.commit()

    assert account.id is not None
    assert account.email == "alice@example.com"
    assert account.balance == 0
    assert account.provider == "email"
    assert AccountStore.verify_password(account, "password123")
    assert not AccountStore.verify_password(account, "wrong-password")


@pytest.mark.asyncio
async def test_duplicate_email_is_case_insensitive(db_session):
    await AccountStore.create(db_session, "bob@example.com", password="password123")
    await db_session.commit()

    with pytest.raises(DuplicateEmailError) as exc_info:
        await AccountStore.create(db_session, "BOB@example.COM", password="password123")
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_find_by_email_and_provider(db_session):
    created = await AccountStore.create(
        db_session, "carol@example.com", name="Carol", provider="google", provider_id="g-123"
    )
    await db_session.commit()

    assert (await AccountStore.find_by_email(db_session, "CAROL@example.com")).id == created.id
    assert (await AccountStore.find_by_provider(db_session, "google", "g-123")).id == created.id
    assert await AccountStore.find_by_provider(db_session, "google", "g-999") is None
    assert await AccountStore.find_by_id(db_session, 9999) is None
    # External sign-in accounts have no password to verify
    assert not AccountStore.verify_password(created, "anything")


@pytest.mark.asyncio
async def test_find_by_email_matches_stored_form_on_indexed_column(db_session, mocker):
    created = await AccountStore.create(db_session, "  Dave@Example.COM ")
    await db_session.commit()
    assert created.email == "dave@example.com"

    execute = mocker.spy(db_session, "execute")
    found = await AccountStore.find_by_email(db_session, " DAVE@example.com")

    assert found.id == created.id
    # Plain equality on accounts.email so the unique index is usable
    statement = str(execute.call_args.args[0]).lower()
    assert "lower(" not in statement
    assert "accounts.email = " in statement


@pytest.mark.asyncio
async def test_adjust_balance_writes_matching_ledger_entry(db_session, ledger_entries):
    account = await AccountStore.create(db_session, "dave@example.com")
    await db_session.commit()

    account = await AccountStore.adjust_balance(db_session, account.id, 5, "purchase:10-credits")
    account = await AccountStore.adjust_balance(db_session, account.id, -2, "spend:analyze-answer")
    await db_session.commit()

    assert account.balance == 3
    entries = await ledger_entries(account.id)
    assert [(e.delta, e.reason) for e in entries] == [(5, "purchase:10-credits"), (-2, "spend:analyze-answer")]
    assert [e.kind for e in entries] == [LedgerReason.PURCHASE, LedgerReason.SPEND]
    assert await AccountStore.ledger_balance(db_session, account.id) == 3


@pytest.mark.asyncio
async def test_debit_below_zero_is_rejected_without_ledger_entry(db_session, ledger_entries):
    account = await AccountStore.create(db_session, "erin@example.com")
    await db_session.commit()
    account_id = account.id

    with pytest.raises(InsufficientBalanceError) as exc_info:
        await AccountStore.adjust_balance(db_session, account_id, -1, "spend:analyze-answer")
    await db_session.rollback()

    assert exc_info.value.error_code == "ERR_CREDITS_EXHAUSTED"
    assert exc_info.value.status_code == 402
    assert await ledger_entries(account_id) == []
    assert (await AccountStore.get(db_session, account_id)).balance == 0


@pytest.mark.asyncio
async def test_adjust_balance_validation(db_session):
    account = await AccountStore.create(db_session, "frank@example.com")
    await db_session.commit()

    with pytest.raises(ValidationError):
        await AccountStore.adjust_balance(db_session, account.id, 0, "admin-adjustment")

    with pytest.raises(ValidationError):
        await AccountStore.adjust_balance(db_session, account.id, 5, "lottery:jackpot")

    with pytest.raises(ResourceNotFoundError):
        await AccountStore.adjust_balance(db_session, 4242, 5, "admin-adjustment")


@pytest.mark.asyncio
async def test_reconcile_detects_and_repairs_drift(db_session):
    account = await AccountStore.create(db_session, "gina@example.com")
    await db_session.commit()
    await AccountStore.adjust_balance(db_session, account.id, 7, "admin-adjustment:welcome")
    await db_session.commit()

    result = await AccountStore.reconcile(db_session, account.id)
    assert result.consistent
    assert result.cached_balance == result.ledger_balance == 7

    # Corrupt the cache behind the store's back
    await db_session.execute(update(Account).where(Account.id == account.id).values(balance=2))
    await db_session.commit()

    drift = await AccountStore.reconcile(db_session, account.id)
    assert not drift.consistent
    assert drift.cached_balance == 2
    assert drift.ledger_balance == 7
    assert not drift.repaired

    repaired = await AccountStore.reconcile(db_session, account.id, repair=True)
    await db_session.commit()
    assert repaired.repaired
    assert repaired.ledger_balance == 7
    assert (await AccountStore.reconcile(db_session, account.id)).consistent
