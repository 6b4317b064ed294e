"""
Stripe Checkout client.

Opens hosted checkout sessions for credit-pack purchases. The Stripe SDK is
blocking, so calls run in a worker thread behind the payment circuit breaker.
Callers must not hold a database transaction open across `create_session`.
"""

import asyncio
import logging
from typing import Optional, Dict, Any
from pydantic import BaseModel
import stripe

from creditcore.app.core.config import settings
from creditcore.app.core.exceptions import PaymentProviderError
from creditcore.app.core.reliability import CircuitBreaker, CircuitOpenError, payment_circuit_breaker
from creditcore.app.models.transaction import Transaction

logger = logging.getLogger(__name__)


class CheckoutSession(BaseModel):
    session_id: str
    url: str


class StripeCheckoutClient:
    """Creates Stripe Checkout sessions for pending transactions."""

    def __init__(
        self,
        api_key: Optional[str],
        success_url: str,
        cancel_url: str,
        breaker: CircuitBreaker = payment_circuit_breaker,
    ):
        self.api_key = api_key
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.breaker = breaker

    async def create_session(
        self,
        txn: Transaction,
        pack: Dict[str, Any],
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Open a checkout session for `txn`.

        Raises:
            PaymentProviderError: provider not configured, unreachable,
                rejecting the request, or circuit open
        """
        if not self.api_key:
            raise PaymentProviderError("Payment provider is not configured")

        try:
            session = await self.breaker.call(
                asyncio.to_thread, self._create, txn, pack, customer_email
            )
        except CircuitOpenError:
            logger.warning("Checkout for transaction %s rejected: circuit open", txn.id)
            raise PaymentProviderError("Payment provider temporarily unavailable")
        except stripe.StripeError as e:
            logger.error("Stripe checkout failed for transaction %s: %s", txn.id, e)
            raise PaymentProviderError("Could not create checkout session")

        return CheckoutSession(session_id=session["id"], url=session["url"])

    def _create(self, txn: Transaction, pack: Dict[str, Any], customer_email: Optional[str]):
        return stripe.checkout.Session.create(
            api_key=self.api_key,
            mode="payment",
            line_items=[{
                "price_data": {
                    "currency": txn.currency,
                    "unit_amount": txn.amount_paid_minor_units,
                    "product_data": {
                        "name": pack["name"],
                        "description": pack["description"],
                    },
                },
                "quantity": 1,
            }],
            customer_email=customer_email,
            client_reference_id=str(txn.id),
            metadata={"transaction_id": str(txn.id), "pack_id": txn.pack_id},
            success_url=self.success_url,
            cancel_url=self.cancel_url,
        )


def get_checkout_client() -> StripeCheckoutClient:
    """FastAPI dependency providing the configured checkout client."""
    return StripeCheckoutClient(
        api_key=settings.stripe_secret_key,
        success_url=settings.checkout_success_url,
        cancel_url=settings.checkout_cancel_url,
    )
