"""
Centralized Test Configuration.

Each test gets its own file-backed SQLite database. NullPool gives every
session its own connection, so concurrent requests really race and SQLite
serializes the writers, as the production database would.
"""

import hashlib
import hmac
import json
import time
import uuid

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, select, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from creditcore.app.main import app
from creditcore.app.db.session import get_db, Base
from creditcore.app.core.config import settings
import creditcore.app.core.redis_client as redis_client_module
from creditcore.app.domain.credits.packs import get_pack
from creditcore.app.domain.credits.spend import SpendService
from creditcore.app.domain.payments.checkout import CheckoutSession, get_checkout_client
from creditcore.app.domain.payments.transaction_tracker import TransactionTracker
from creditcore.app.models.account import Account
from creditcore.app.models.enums import AccountRole
from creditcore.app.models.ledger_entry import LedgerEntry


@pytest.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'credits.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        poolclass=NullPool,
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign key constraints for SQLite."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        return await self.set(key, value, ex=ttl)

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


class FakeCheckoutClient:
    """Stands in for Stripe Checkout; records every session it opens."""

    def __init__(self):
        self.sessions = []
        self.error = None

    async def create_session(self, txn, pack, customer_email=None):
        if self.error is not None:
            raise self.error
        session_id = f"cs_test_{txn.id}_{uuid.uuid4().hex[:8]}"
        self.sessions.append({"session_id": session_id, "transaction_id": txn.id, "email": customer_email})
        return CheckoutSession(session_id=session_id, url=f"https://checkout.stripe.test/{session_id}")


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def fake_checkout():
    return FakeCheckoutClient()


@pytest.fixture(autouse=True)
def apply_overrides(session_factory, mock_redis, fake_checkout, monkeypatch):
    """Point the app at the per-test database, Redis mock and checkout fake."""
    monkeypatch.setattr(redis_client_module, "redis_client", mock_redis)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_checkout_client] = lambda: fake_checkout
    yield

    app.dependency_overrides = {}


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def register(client):
    """Register an account over HTTP and return the response body."""
    async def _register(email, password="password123", referral_code=None):
        payload = {"email": email, "password": password}
        if referral_code is not None:
            payload["referral_code"] = referral_code
        response = await client.post("/v1/auth/register", json=payload)
        assert response.status_code == 201, response.text
        body = response.json()
        body["headers"] = {"Authorization": f"Bearer {body['access_token']}"}
        return body
    return _register


@pytest.fixture
def make_admin(session_factory, register):
    """Register an account and promote it to ADMIN (tokens carry the role, so log in again)."""
    async def _make_admin(email="ops@example.com"):
        body = await register(email)
        async with session_factory() as db:
            account = await db.get(Account, body["account_id"])
            account.role = AccountRole.ADMIN
            await db.commit()
        return body
    return _make_admin


@pytest.fixture
def admin_headers(client, make_admin):
    async def _admin_headers(email="ops@example.com"):
        await make_admin(email)
        response = await client.post("/v1/auth/login", json={"email": email, "password": "password123"})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _admin_headers


@pytest.fixture
def grant(session_factory):
    """Give an account credits through the credit interface."""
    async def _grant(account_id, amount, reason="admin-adjustment:test-setup"):
        async with session_factory() as db:
            await SpendService.credit(db, account_id, amount, reason)
    return _grant


@pytest.fixture
def balances(session_factory):
    """(cached balance, ledger sum) read through a fresh session."""
    async def _balances(account_id):
        async with session_factory() as db:
            account = await db.get(Account, account_id)
            result = await db.execute(
                select(func.coalesce(func.sum(LedgerEntry.delta), 0))
                .where(LedgerEntry.account_id == account_id)
            )
            return account.balance, int(result.scalar_one())
    return _balances


@pytest.fixture
def ledger_entries(session_factory):
    async def _ledger_entries(account_id):
        async with session_factory() as db:
            result = await db.execute(
                select(LedgerEntry)
                .where(LedgerEntry.account_id == account_id)
                .order_by(LedgerEntry.id)
            )
            return result.scalars().all()
    return _ledger_entries


@pytest.fixture
def pending_purchase(session_factory):
    """Create a pending transaction for a catalogue pack, bound to external_id."""
    async def _pending_purchase(account_id, external_id, pack_id="10-credits"):
        pack = get_pack(pack_id)
        async with session_factory() as db:
            txn = await TransactionTracker.create_pending(
                db,
                account_id=account_id,
                pack_id=pack_id,
                credits_requested=pack["credits"],
                amount_paid_minor=pack["price_minor_units"],
                currency=pack["currency"],
            )
            await db.commit()
            txn = await TransactionTracker.bind_external_id(db, txn.id, external_id)
            await db.commit()
            return txn
    return _pending_purchase


def sign_payload(payload: str, secret: str = None, timestamp: int = None) -> str:
    """Stripe-Signature header: t=<ts>,v1=HMAC_SHA256(secret, "<ts>.<payload>")."""
    secret = secret or settings.stripe_webhook_secret
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def stripe_event():
    """Build a JSON event body."""
    def _stripe_event(event_type, obj, event_id=None):
        return json.dumps({
            "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        })
    return _stripe_event


@pytest.fixture
def deliver(client):
    """POST a (signed by default) webhook delivery."""
    async def _deliver(payload, signature=None):
        headers = {"Content-Type": "application/json"}
        signature = signature if signature is not None else sign_payload(payload)
        if signature:
            headers["Stripe-Signature"] = signature
        return await client.post("/v1/webhooks/stripe", content=payload, headers=headers)
    return _deliver


@pytest.fixture
def sign():
    return sign_payload
