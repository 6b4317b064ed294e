"""
Ledger history tests.

History is most-recent-first, finite, lazy (paged) and restartable.
"""

import pytest

from creditcore.app.core.exceptions import ValidationError
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.domain.credits.ledger import Ledger, LedgerHistory


async def _account_with_entries(db, count):
    account = await AccountStore.create(db, "ledger@example.com")
    for i in range(count):
        await AccountStore.adjust_balance(db, account.id, i + 1, f"admin-adjustment:grant-{i}")
    await db.commit()
    return account


@pytest.mark.asyncio
async def test_history_is_most_recent_first_and_limited(db_session):
    account = await _account_with_entries(db_session, 5)

    entries = await Ledger.history(db_session, account.id, limit=3).to_list()

    assert [e.delta for e in entries] == [5, 4, 3]
    assert entries[0].id > entries[1].id > entries[2].id


@pytest.mark.asyncio
async def test_history_pages_across_keyset_boundaries(db_session):
    account = await _account_with_entries(db_session, 7)

    history = LedgerHistory(db_session, account.id, limit=10, page_size=2)
    entries = [entry async for entry in history]

    assert [e.delta for e in entries] == [7, 6, 5, 4, 3, 2, 1]


@pytest.mark.asyncio
async def test_history_is_restartable(db_session):
    account = await _account_with_entries(db_session, 4)
    history = LedgerHistory(db_session, account.id, limit=4, page_size=3)

    first = [e.id async for e in history]
    second = [e.id async for e in history]

    assert first == second
    assert len(first) == 4


@pytest.mark.asyncio
async def test_history_is_lazy(db_session, mocker):
    account = await _account_with_entries(db_session, 6)
    spy = mocker.spy(db_session, "execute")

    history = LedgerHistory(db_session, account.id, limit=6, page_size=2)
    assert spy.call_count == 0

    async for entry in history:
        assert entry.delta == 6
        break

    assert spy.call_count == 1


@pytest.mark.asyncio
async def test_history_of_empty_account(db_session):
    account = await AccountStore.create(db_session, "empty@example.com")
    await db_session.commit()

    assert await Ledger.history(db_session, account.id, limit=10).to_list() == []
    assert await Ledger.balance(db_session, account.id) == 0


@pytest.mark.asyncio
async def test_history_rejects_non_positive_limit(db_session):
    with pytest.raises(ValidationError):
        Ledger.history(db_session, 1, limit=0)


@pytest.mark.asyncio
async def test_ledger_endpoint_lists_own_entries(client, register, grant):
    account = await register("reader@example.com")
    await grant(account["account_id"], 3, "admin-adjustment:first")
    await grant(account["account_id"], 2, "admin-adjustment:second")

    response = await client.get("/v1/credits/ledger?limit=1", headers=account["headers"])

    assert response.status_code == 200
    data = response.json()
    assert data["account_id"] == account["account_id"]
    assert len(data["entries"]) == 1
    assert data["entries"][0]["reason"] == "admin-adjustment:second"
    assert data["entries"][0]["kind"] == "admin-adjustment"
