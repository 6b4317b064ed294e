"""
Concurrency Tests.

Validates that races on the same balance are decided by the database:
the conditional balance update lets exactly one of two competing debits
through when only one credit is left.
"""

import pytest
import asyncio

from creditcore.app.core.exceptions import InsufficientBalanceError
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.domain.credits.spend import SpendService


@pytest.mark.asyncio
async def test_concurrent_debits_on_last_credit(client, register, grant, balances, ledger_entries):
    """Balance 1, two concurrent debit("analyze-answer"): one 200, one 402, final 0."""
    account = await register("last-credit@example.com")
    await grant(account["account_id"], 1)

    responses = await asyncio.gather(*[
        client.post("/v1/credits/debit", json={"reason": "analyze-answer"}, headers=account["headers"])
        for _ in range(2)
    ])

    codes = sorted(r.status_code for r in responses)
    assert codes == [200, 402]
    rejected = next(r for r in responses if r.status_code == 402)
    assert rejected.json()["error_code"] == "ERR_CREDITS_EXHAUSTED"

    assert await balances(account["account_id"]) == (0, 0)
    debits = [e for e in await ledger_entries(account["account_id"]) if e.delta < 0]
    assert [(e.delta, e.reason) for e in debits] == [(-1, "spend:analyze-answer")]


@pytest.mark.asyncio
async def test_many_concurrent_debits_never_overdraw(session_factory, balances):
    async with session_factory() as db:
        account = await AccountStore.create(db, "burst@example.com")
        await db.commit()
        await SpendService.credit(db, account.id, 3, "purchase:10-credits")

    async def debit():
        async with session_factory() as db:
            try:
                await SpendService.debit(db, account.id, "generate-question")
                return True
            except InsufficientBalanceError:
                return False

    results = await asyncio.gather(*[debit() for _ in range(8)])

    assert results.count(True) == 3
    assert results.count(False) == 5
    assert await balances(account.id) == (0, 0)


@pytest.mark.asyncio
async def test_concurrent_credits_are_all_applied(session_factory, balances):
    async with session_factory() as db:
        account = await AccountStore.create(db, "credits@example.com")
        await db.commit()

    async def credit(i):
        async with session_factory() as db:
            await SpendService.credit(db, account.id, 2, f"admin-adjustment:batch-{i}")

    await asyncio.gather(*[credit(i) for i in range(5)])

    assert await balances(account.id) == (10, 10)
