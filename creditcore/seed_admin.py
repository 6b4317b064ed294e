"""
Database seeding script for the operator account.

Creates the ADMIN account used for balance adjustments, reconciliation and
manual referral payouts. Run after the database is set up:

    python -m creditcore.seed_admin --email ops@example.com --password '...'
"""

import argparse
import asyncio

from creditcore.app.db.session import AsyncSessionLocal, engine, init_models
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.models.enums import AccountRole
from creditcore.app.services.audit import log_event, AuditAction


async def seed_admin(email: str, password: str, name: str):
    await init_models()

    try:
        await _create_admin(email, password, name)
    finally:
        await engine.dispose()


async def _create_admin(email: str, password: str, name: str):
    async with AsyncSessionLocal() as db:
        print("🌱 Seeding admin account...")

        existing = await AccountStore.find_by_email(db, email)
        if existing:
            print(f"ℹ️  Account {existing.email} already exists (role {existing.role.value}), skipping")
            return

        admin = await AccountStore.create(
            db,
            email=email,
            password=password,
            name=name,
            role=AccountRole.ADMIN,
        )
        await log_event(
            db=db,
            action=AuditAction.ACCOUNT_CREATED,
            target_account_id=admin.id,
            metadata={"role": AccountRole.ADMIN.value, "source": "seed"}
        )
        await db.commit()

        print(f"✅ Created ADMIN account {admin.email} (id {admin.id})")


def main():
    parser = argparse.ArgumentParser(description="Create the operator (ADMIN) account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="Operator")
    args = parser.parse_args()

    asyncio.run(seed_admin(args.email, args.password, args.name))


if __name__ == "__main__":
    main()
