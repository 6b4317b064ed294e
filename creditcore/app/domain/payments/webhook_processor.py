"""
Payment Webhook Processor (Domain Logic).

Consumes Stripe notifications, which are delivered at least once, and
applies each successful payment exactly once.

Flow:
1. Verify the signature before touching storage
2. Acknowledge event types that need no action
3. Look up the transaction by the provider's object id
4. In one unit: complete if still pending, credit the pack, run the
   referral payout hook, commit
5. Storage failures roll the unit back and surface as 503 so the
   provider redelivers
"""

import logging
from typing import Optional
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import DBAPIError, IntegrityError
import stripe

from creditcore.app.core.config import settings
from creditcore.app.core.exceptions import (
    AlreadyFinalizedError,
    InvalidSignatureError,
    StorageUnavailableError,
    ValidationError,
)
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.domain.payments.transaction_tracker import TransactionTracker
from creditcore.app.domain.referrals.referral_service import ReferralService
from creditcore.app.models.billing_enums import LedgerReason, TransactionStatus
from creditcore.app.schemas.webhook import PaymentDetails, WebhookEvent, WebhookOutcome, WebhookStatus
from creditcore.app.services.audit import AuditAction, log_event

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"

HANDLED_EVENT_TYPES = {CHECKOUT_COMPLETED, CHECKOUT_ASYNC_SUCCEEDED, PAYMENT_INTENT_SUCCEEDED}


class WebhookProcessor:

    def __init__(self, secret: Optional[str] = None, tolerance: Optional[int] = None):
        self.secret = secret or settings.stripe_webhook_secret
        self.tolerance = tolerance if tolerance is not None else settings.stripe_webhook_tolerance_seconds

    def verify(self, payload: bytes, signature_header: Optional[str]) -> WebhookEvent:
        """
        Authenticate a raw delivery and parse its envelope.

        Raises:
            InvalidSignatureError: missing, malformed, stale or wrong signature
            ValidationError: signed payload is not a valid event envelope
        """
        if not signature_header:
            logger.warning("Webhook rejected: missing signature header")
            raise InvalidSignatureError("Missing webhook signature")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Webhook rejected: payload is not UTF-8")
            raise InvalidSignatureError()

        try:
            stripe.WebhookSignature.verify_header(body, signature_header, self.secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook rejected: %s", e)
            raise InvalidSignatureError()

        try:
            return WebhookEvent.model_validate_json(body)
        except PydanticValidationError as e:
            logger.warning("Webhook rejected: malformed envelope")
            raise ValidationError("Malformed webhook event", details={"error_count": e.error_count()})

    @staticmethod
    def extract_payment(event: WebhookEvent) -> Optional[PaymentDetails]:
        """
        Payment facts of a handled event, or None if the event needs no action.

        A checkout session that is not yet paid (delayed payment methods) is
        skipped; its async_payment_succeeded event follows.
        """
        obj = event.data.object

        if event.type == PAYMENT_INTENT_SUCCEEDED:
            amount = obj.get("amount_received", obj.get("amount"))
        else:
            if obj.get("payment_status") != "paid":
                return None
            amount = obj.get("amount_total")

        external_id = obj.get("id")
        currency = obj.get("currency")
        if not external_id or amount is None or not currency:
            raise ValidationError(
                "Payment object is missing id, amount or currency",
                details={"event_id": event.id}
            )
        if not isinstance(currency, str):
            raise ValidationError(
                "Payment currency must be an ISO code string",
                details={"event_id": event.id}
            )

        try:
            return PaymentDetails(
                external_payment_id=external_id,
                amount_minor_units=amount,
                currency=currency.lower()
            )
        except PydanticValidationError as e:
            raise ValidationError(
                "Malformed payment object",
                details={
                    "event_id": event.id,
                    "fields": [".".join(str(part) for part in err["loc"]) for err in e.errors()],
                }
            )

    async def process(self, db: AsyncSession, event: WebhookEvent) -> WebhookOutcome:
        """
        Apply a verified event. This call owns the unit of work.

        Raises:
            StorageUnavailableError: transient database failure; nothing applied
        """
        if event.type not in HANDLED_EVENT_TYPES:
            logger.info("Webhook %s (%s) ignored", event.id, event.type)
            return self._outcome(event, WebhookStatus.IGNORED)

        payment = self.extract_payment(event)
        if payment is None:
            logger.info("Webhook %s: checkout not paid yet, ignored", event.id)
            return self._outcome(event, WebhookStatus.IGNORED)

        try:
            outcome = await self._apply(db, event, payment)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise
        except DBAPIError as e:
            await db.rollback()
            logger.error("Webhook %s: storage failure, rolled back: %s", event.id, e)
            raise StorageUnavailableError()
        except Exception:
            await db.rollback()
            raise

        return outcome

    async def _apply(self, db: AsyncSession, event: WebhookEvent, payment: PaymentDetails) -> WebhookOutcome:
        txn = await TransactionTracker.find_by_external_id(db, payment.external_payment_id)
        if txn is None:
            # Purchases bind checkout session ids, so payment intents from
            # Checkout routinely have no match here
            level = logging.INFO if event.type == PAYMENT_INTENT_SUCCEEDED else logging.WARNING
            logger.log(
                level,
                "Webhook %s: no transaction for payment %s",
                event.id, payment.external_payment_id
            )
            return self._outcome(event, WebhookStatus.UNTRACKED)

        if txn.status == TransactionStatus.COMPLETED:
            logger.info("Webhook %s: transaction %s already completed", event.id, txn.id)
            return self._outcome(event, WebhookStatus.DUPLICATE, txn.id)

        if txn.status == TransactionStatus.FAILED:
            logger.error(
                "Webhook %s: payment %s received for failed transaction %s, needs review",
                event.id, payment.external_payment_id, txn.id
            )
            return self._outcome(event, WebhookStatus.IGNORED, txn.id)

        if (payment.amount_minor_units != txn.amount_paid_minor_units
                or payment.currency != txn.currency):
            logger.warning(
                "Webhook %s: amount mismatch on transaction %s (expected %s %s, paid %s %s)",
                event.id, txn.id,
                txn.amount_paid_minor_units, txn.currency,
                payment.amount_minor_units, payment.currency
            )
            return self._outcome(event, WebhookStatus.AMOUNT_MISMATCH, txn.id)

        try:
            txn, transitioned = await TransactionTracker.try_complete(db, txn.id)
        except AlreadyFinalizedError:
            logger.error("Webhook %s: transaction %s failed concurrently", event.id, txn.id)
            return self._outcome(event, WebhookStatus.IGNORED, txn.id)

        if not transitioned:
            logger.info("Webhook %s: lost race, transaction %s already completed", event.id, txn.id)
            return self._outcome(event, WebhookStatus.DUPLICATE, txn.id)

        account = await AccountStore.adjust_balance(
            db, txn.account_id, txn.credits_requested,
            f"{LedgerReason.PURCHASE.value}:{txn.pack_id}"
        )
        await log_event(
            db=db,
            action=AuditAction.CREDITS_PURCHASED,
            target_account_id=txn.account_id,
            metadata={
                "transaction_id": txn.id,
                "pack_id": txn.pack_id,
                "credits": txn.credits_requested,
                "event_id": event.id,
                "external_payment_id": payment.external_payment_id,
            }
        )

        referral = await ReferralService.apply_purchase_payout(db, txn.account_id)
        if referral is not None:
            await log_event(
                db=db,
                action=AuditAction.REFERRER_CREDITED,
                target_account_id=referral.referrer_account_id,
                metadata={"referral_id": referral.id, "trigger": "first_purchase", "transaction_id": txn.id}
            )

        logger.info(
            "Webhook %s: transaction %s completed, account %s +%s (balance %s)",
            event.id, txn.id, account.id, txn.credits_requested, account.balance
        )
        return self._outcome(event, WebhookStatus.APPLIED, txn.id, txn.credits_requested)

    @staticmethod
    def _outcome(
        event: WebhookEvent,
        status: WebhookStatus,
        transaction_id: Optional[int] = None,
        credits_applied: int = 0,
    ) -> WebhookOutcome:
        return WebhookOutcome(
            status=status,
            event_id=event.id,
            event_type=event.type,
            transaction_id=transaction_id,
            credits_applied=credits_applied
        )


def get_webhook_processor() -> WebhookProcessor:
    """FastAPI dependency providing the configured processor."""
    return WebhookProcessor()
