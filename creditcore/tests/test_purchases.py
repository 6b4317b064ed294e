"""
Purchase flow tests.

A purchase is a PENDING transaction bound to a checkout session; credits
arrive only through the signed payment webhook.
"""

import pytest

from creditcore.app.core.exceptions import PaymentProviderError
from creditcore.app.domain.credits.packs import CREDIT_PACKS


@pytest.mark.asyncio
async def test_list_packs(client):
    response = await client.get("/v1/purchases/packs")

    assert response.status_code == 200
    packs = {p["pack_id"]: p for p in response.json()}
    assert set(packs) == set(CREDIT_PACKS)
    assert packs["10-credits"]["credits"] == 10
    assert packs["10-credits"]["price_minor_units"] == 500


@pytest.mark.asyncio
async def test_create_purchase_then_webhook_credits(client, register, fake_checkout, stripe_event, deliver, balances):
    buyer = await register("shopper@example.com")

    response = await client.post("/v1/purchases", json={"pack_id": "25-credits"}, headers=buyer["headers"])

    assert response.status_code == 201
    data = response.json()
    txn = data["transaction"]
    assert txn["status"] == "pending"
    assert txn["credits_requested"] == 25
    assert txn["amount_paid_minor_units"] == 1000
    session_id = fake_checkout.sessions[0]["session_id"]
    assert txn["external_payment_id"] == session_id
    assert data["checkout_url"].endswith(session_id)
    assert fake_checkout.sessions[0]["email"] == "shopper@example.com"

    # Nothing is credited before the provider confirms payment
    assert await balances(buyer["account_id"]) == (0, 0)

    webhook = await deliver(stripe_event("checkout.session.completed", {
        "id": session_id,
        "object": "checkout.session",
        "amount_total": 1000,
        "currency": "usd",
        "payment_status": "paid",
    }))
    assert webhook.json()["status"] == "applied"
    assert await balances(buyer["account_id"]) == (25, 25)

    response = await client.get(f"/v1/purchases/{txn['id']}", headers=buyer["headers"])
    assert response.json()["status"] == "completed"
    assert response.json()["completed_at"] is not None


@pytest.mark.asyncio
async def test_provider_failure_marks_transaction_failed(client, register, fake_checkout):
    buyer = await register("unlucky@example.com")
    fake_checkout.error = PaymentProviderError("Stripe is down")

    response = await client.post("/v1/purchases", json={"pack_id": "10-credits"}, headers=buyer["headers"])

    assert response.status_code == 502
    assert response.json()["error_code"] == "ERR_PAYMENT_001"

    listed = (await client.get("/v1/purchases", headers=buyer["headers"])).json()
    assert len(listed) == 1
    assert listed[0]["status"] == "failed"
    assert listed[0]["failure_reason"] == "Stripe is down"
    assert listed[0]["external_payment_id"] is None


@pytest.mark.asyncio
async def test_unknown_pack(client, register):
    buyer = await register("picky@example.com")

    response = await client.post("/v1/purchases", json={"pack_id": "1000-credits"}, headers=buyer["headers"])

    assert response.status_code == 404
    assert (await client.get("/v1/purchases", headers=buyer["headers"])).json() == []


@pytest.mark.asyncio
async def test_list_and_get_are_scoped_to_owner(client, register):
    owner = await register("owner@example.com")
    other = await register("other@example.com")

    first = (await client.post("/v1/purchases", json={"pack_id": "10-credits"}, headers=owner["headers"])).json()
    second = (await client.post("/v1/purchases", json={"pack_id": "60-credits"}, headers=owner["headers"])).json()

    listed = (await client.get("/v1/purchases", headers=owner["headers"])).json()
    assert [t["id"] for t in listed] == [second["transaction"]["id"], first["transaction"]["id"]]

    assert (await client.get("/v1/purchases", headers=other["headers"])).json() == []
    response = await client.get(f"/v1/purchases/{first['transaction']['id']}", headers=other["headers"])
    assert response.status_code == 404
