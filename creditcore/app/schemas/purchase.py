"""
Purchase Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from creditcore.app.models.billing_enums import TransactionStatus


class CreditPackResponse(BaseModel):
    """Schema for displaying a credit pack."""
    pack_id: str
    name: str
    credits: int
    price_minor_units: int
    currency: str
    description: str


class PurchaseCreate(BaseModel):
    """Schema for starting a purchase."""
    pack_id: str = Field(..., min_length=1, max_length=50)


class TransactionResponse(BaseModel):
    """Schema for displaying a purchase transaction."""
    id: int
    pack_id: str
    credits_requested: int
    amount_paid_minor_units: int
    currency: str
    status: TransactionStatus
    failure_reason: Optional[str] = None
    external_payment_id: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CheckoutResponse(BaseModel):
    """Returned by POST /purchases: where to send the customer to pay."""
    transaction: TransactionResponse
    checkout_url: str
