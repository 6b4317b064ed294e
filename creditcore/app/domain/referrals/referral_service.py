"""
Referral Issuer/Redeemer (Domain Logic).

Single-use referral codes. A code is redeemed at most once, never by its
own referrer, and a referrer can bring in the same account only once.
Redemption grants the new account a signup bonus; the referrer is paid
separately by `credit_referrer`, which is idempotent.

Methods flush but never commit; the caller owns the unit of work.
"""

import logging
import secrets
import string
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from creditcore.app.core.config import settings
from creditcore.app.core.exceptions import (
    AlreadyRedeemedError,
    CodeNotFoundError,
    DuplicateReferrerPairError,
    ResourceNotFoundError,
    SelfReferralError,
    ValidationError,
)
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.models.billing_enums import LedgerReason
from creditcore.app.models.referral_code import ReferralCode

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
ACCOUNT_PREFIX_LENGTH = 4
MAX_CODE_ATTEMPTS = 5

PAYOUT_ON_FIRST_PURCHASE = "first_purchase"
PAYOUT_MANUAL = "manual"


def build_code(account_id: int, length: int) -> str:
    """Zero-padded account id prefix followed by random upper-case alphanumerics."""
    prefix = str(account_id).zfill(ACCOUNT_PREFIX_LENGTH)[:ACCOUNT_PREFIX_LENGTH]
    random_part = "".join(
        secrets.choice(CODE_ALPHABET) for _ in range(max(length - ACCOUNT_PREFIX_LENGTH, 4))
    )
    return f"{prefix}{random_part}"


_CONFLICT_AWARE_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def _insert_code_if_free(db: AsyncSession, code: str, account_id: int) -> Optional[int]:
    """Insert an unredeemed code; returns its id, or None if the code is taken."""
    dialect_insert = _CONFLICT_AWARE_INSERTS[db.get_bind().dialect.name]
    stmt = (
        dialect_insert(ReferralCode)
        .values(code=code, referrer_account_id=account_id)
        .on_conflict_do_nothing(index_elements=["code"])
        .returning(ReferralCode.id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


class ReferralService:

    @staticmethod
    async def generate_code(db: AsyncSession, account_id: int) -> ReferralCode:
        """
        Issue a new unredeemed code owned by account_id.

        An account may hold any number of outstanding codes. Each candidate
        is inserted with ON CONFLICT DO NOTHING, so a code taken by a
        concurrent request costs one attempt instead of the caller's
        transaction.
        """
        await AccountStore.get(db, account_id)

        for _ in range(MAX_CODE_ATTEMPTS):
            code = build_code(account_id, settings.referral_code_length)
            referral_id = await _insert_code_if_free(db, code, account_id)
            if referral_id is not None:
                break
            logger.info("Referral code %s already taken, retrying", code)
        else:
            raise ValidationError("Could not allocate a unique referral code")

        referral = await db.get(ReferralCode, referral_id)
        logger.info("Referral code %s issued to account %s", code, account_id)
        return referral

    @staticmethod
    async def find_by_code(db: AsyncSession, code: str) -> Optional[ReferralCode]:
        result = await db.execute(
            select(ReferralCode)
            .where(ReferralCode.code == code.strip().upper())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def redeem(db: AsyncSession, code: str, new_account_id: int) -> ReferralCode:
        """
        Redeem a code for a newly created account.

        Checks, in order:
        1. CodeNotFoundError: no such code
        2. AlreadyRedeemedError: the code has a referred account
        3. SelfReferralError: the code belongs to new_account_id
        4. DuplicateReferrerPairError: this referrer already referred new_account_id

        On success the code is claimed with a conditional UPDATE on
        `referred_account_id IS NULL` and the signup bonus is granted in the
        same transaction. The referrer is not paid here.
        """
        referral = await ReferralService.find_by_code(db, code)
        if referral is None:
            raise CodeNotFoundError(code)

        if referral.referred_account_id is not None:
            raise AlreadyRedeemedError(referral.code)

        if referral.referrer_account_id == new_account_id:
            raise SelfReferralError(referral.code)

        existing_pair = await db.execute(
            select(ReferralCode.id).where(
                ReferralCode.referrer_account_id == referral.referrer_account_id,
                ReferralCode.referred_account_id == new_account_id
            )
        )
        if existing_pair.first() is not None:
            raise DuplicateReferrerPairError(referral.code)

        bonus = settings.referral_signup_bonus

        try:
            result = await db.execute(
                update(ReferralCode)
                .where(
                    ReferralCode.id == referral.id,
                    ReferralCode.referred_account_id.is_(None)
                )
                .values(
                    referred_account_id=new_account_id,
                    used_at=func.now(),
                    credits_granted=bonus,
                    signup_bonus_granted=bonus > 0
                )
                .execution_options(synchronize_session=False)
            )
        except IntegrityError:
            raise DuplicateReferrerPairError(referral.code)

        if result.rowcount == 0:
            # Another redemption claimed the code first
            raise AlreadyRedeemedError(referral.code)

        if bonus > 0:
            await AccountStore.adjust_balance(
                db, new_account_id, bonus, f"{LedgerReason.REFERRAL_BONUS.value}:{referral.code}"
            )

        referral = await db.get(ReferralCode, referral.id, populate_existing=True)
        logger.info(
            "Referral code %s redeemed by account %s (referrer %s, bonus %s)",
            referral.code, new_account_id, referral.referrer_account_id, bonus
        )
        return referral

    @staticmethod
    async def try_credit_referrer(db: AsyncSession, referral_id: int) -> Tuple[ReferralCode, bool]:
        """
        Pay the referrer of a redeemed code.

        Returns:
            (referral, credited). credited is True only for the caller whose
            conditional UPDATE flipped `referrer_credited`.

        Raises:
            ResourceNotFoundError: no such referral
            ValidationError: the code has not been redeemed
        """
        referral = await db.get(ReferralCode, referral_id, populate_existing=True)
        if referral is None:
            raise ResourceNotFoundError("Referral code", referral_id)

        if referral.referred_account_id is None:
            raise ValidationError(
                "Referral code has not been redeemed",
                details={"referral_id": referral_id}
            )

        result = await db.execute(
            update(ReferralCode)
            .where(
                ReferralCode.id == referral_id,
                ReferralCode.referred_account_id.is_not(None),
                ReferralCode.referrer_credited.is_(False)
            )
            .values(referrer_credited=True)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            referral = await db.get(ReferralCode, referral_id, populate_existing=True)
            return referral, False

        payout = settings.referral_payout_credits
        if payout > 0:
            await AccountStore.adjust_balance(
                db, referral.referrer_account_id, payout,
                f"{LedgerReason.REFERRAL_PAYOUT.value}:{referral.code}"
            )

        referral = await db.get(ReferralCode, referral_id, populate_existing=True)
        logger.info(
            "Referrer %s credited %s for code %s",
            referral.referrer_account_id, payout, referral.code
        )
        return referral, True

    @staticmethod
    async def credit_referrer(db: AsyncSession, referral_id: int) -> ReferralCode:
        referral, _ = await ReferralService.try_credit_referrer(db, referral_id)
        return referral

    @staticmethod
    async def apply_purchase_payout(db: AsyncSession, buyer_account_id: int) -> Optional[ReferralCode]:
        """
        Payout hook run inside a completed purchase's unit of work.

        Under the "first_purchase" policy the buyer's unpaid referral (if any)
        pays its referrer. Returns the referral credited by this call, or None.
        """
        if settings.referral_payout_trigger != PAYOUT_ON_FIRST_PURCHASE:
            return None

        referral = await ReferralService.find_for_referred(db, buyer_account_id)
        if referral is None or referral.referrer_credited:
            return None

        referral, credited = await ReferralService.try_credit_referrer(db, referral.id)
        return referral if credited else None

    @staticmethod
    async def list_for_referrer(db: AsyncSession, account_id: int) -> List[ReferralCode]:
        result = await db.execute(
            select(ReferralCode)
            .where(ReferralCode.referrer_account_id == account_id)
            .order_by(ReferralCode.id.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def find_for_referred(db: AsyncSession, account_id: int) -> Optional[ReferralCode]:
        """The referral that brought account_id in, if any (earliest redemption)."""
        result = await db.execute(
            select(ReferralCode)
            .where(ReferralCode.referred_account_id == account_id)
            .order_by(ReferralCode.id.asc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
