"""
Payment provider webhook endpoint.

Unauthenticated: every delivery is authenticated by its Stripe signature.
Returns 200 for applied events and for every acknowledged no-op, so the
provider only retries on 4xx/5xx.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from creditcore.app.db.session import get_db
from creditcore.app.domain.payments.webhook_processor import WebhookProcessor, get_webhook_processor
from creditcore.app.schemas.webhook import WebhookOutcome

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/stripe", response_model=WebhookOutcome)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    processor: WebhookProcessor = Depends(get_webhook_processor)
):
    payload = await request.body()
    event = processor.verify(payload, stripe_signature)
    return await processor.process(db, event)
