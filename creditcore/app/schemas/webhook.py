"""
Payment webhook schemas.

Typed views of the provider's event envelope and of the processing outcome.
"""

import enum
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any


class WebhookEventData(BaseModel):
    object: Dict[str, Any] = Field(..., description="The provider object the event is about")


class WebhookEvent(BaseModel):
    """Stripe event envelope. Unknown fields are ignored."""
    id: str
    type: str
    data: WebhookEventData


class PaymentDetails(BaseModel):
    """Payment facts extracted from a handled event."""
    external_payment_id: str
    amount_minor_units: int
    currency: str


class WebhookStatus(str, enum.Enum):
    APPLIED = "applied"  # Transaction completed and credits granted by this delivery
    DUPLICATE = "duplicate"  # Transaction was already completed
    IGNORED = "ignored"  # Event type (or unpaid session) that needs no action
    UNTRACKED = "untracked"  # No transaction bound to the external payment id
    AMOUNT_MISMATCH = "amount_mismatch"  # Paid amount/currency differ; left pending for review


class WebhookOutcome(BaseModel):
    status: WebhookStatus
    event_id: str
    event_type: str
    transaction_id: Optional[int] = None
    credits_applied: int = 0
