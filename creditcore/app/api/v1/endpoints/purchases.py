"""
Purchase API endpoints.

Starting a purchase runs three steps so no database transaction is open
while the payment provider is called:
1. Create the PENDING transaction and commit
2. Open the provider checkout session
3. Bind the session id to the transaction and commit
If step 2 fails the transaction is marked FAILED.
"""

from typing import List
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from creditcore.app.db.session import get_db
from creditcore.app.core.dependencies import get_current_user, get_client_ip
from creditcore.app.core.exceptions import PaymentProviderError, ResourceNotFoundError
from creditcore.app.domain.credits.packs import CREDIT_PACKS, get_pack
from creditcore.app.domain.payments.checkout import StripeCheckoutClient, get_checkout_client
from creditcore.app.domain.payments.transaction_tracker import TransactionTracker
from creditcore.app.schemas.purchase import (
    CheckoutResponse,
    CreditPackResponse,
    PurchaseCreate,
    TransactionResponse,
)
from creditcore.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/purchases", tags=["Purchases"])


@router.get("/packs", response_model=List[CreditPackResponse])
async def list_packs():
    return [
        CreditPackResponse(pack_id=pack_id, **pack)
        for pack_id, pack in CREDIT_PACKS.items()
    ]


@router.post("", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase(
    purchase: PurchaseCreate,
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    checkout: StripeCheckoutClient = Depends(get_checkout_client)
):
    """
    Start a credit-pack purchase and return the provider checkout URL.

    Credits are granted later, when the provider's webhook confirms payment.
    Returns 502 if the provider cannot open a checkout session.
    """
    pack = get_pack(purchase.pack_id)
    if pack is None:
        raise ResourceNotFoundError("Credit pack", purchase.pack_id)

    account_id = current_user["account_id"]
    ip_address = get_client_ip(request)

    txn = await TransactionTracker.create_pending(
        db,
        account_id=account_id,
        pack_id=purchase.pack_id,
        credits_requested=pack["credits"],
        amount_paid_minor=pack["price_minor_units"],
        currency=pack["currency"],
    )
    await log_event(
        db=db,
        action=AuditAction.PURCHASE_CREATED,
        actor_id=account_id,
        target_account_id=account_id,
        metadata={"transaction_id": txn.id, "pack_id": purchase.pack_id},
        ip_address=ip_address
    )
    await db.commit()
    transaction_id = txn.id

    try:
        session = await checkout.create_session(txn, pack, customer_email=current_user.get("sub"))
    except PaymentProviderError as e:
        await TransactionTracker.fail(db, transaction_id, e.message)
        await log_event(
            db=db,
            action=AuditAction.PURCHASE_FAILED,
            actor_id=account_id,
            target_account_id=account_id,
            metadata={"transaction_id": transaction_id, "reason": e.message},
            ip_address=ip_address
        )
        await db.commit()
        raise

    txn = await TransactionTracker.bind_external_id(db, transaction_id, session.session_id)
    await db.commit()

    return CheckoutResponse(
        transaction=TransactionResponse.model_validate(txn),
        checkout_url=session.url
    )


@router.get("", response_model=List[TransactionResponse])
async def list_purchases(
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The caller's purchase transactions, newest first."""
    transactions = await TransactionTracker.list_for_account(db, current_user["account_id"], limit)
    return [TransactionResponse.model_validate(t) for t in transactions]


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_purchase(
    transaction_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    txn = await TransactionTracker.get(db, transaction_id)
    if txn.account_id != current_user["account_id"]:
        # Do not reveal other accounts' transactions
        raise ResourceNotFoundError("Transaction", transaction_id)
    return TransactionResponse.model_validate(txn)
