"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from creditcore.app.api.v1.endpoints import (
    auth, admin, credits, purchases, referrals, webhooks
)

router = APIRouter()

# Include authentication endpoints
router.include_router(auth.router)

# Balance, ledger and spend
router.include_router(credits.router)

# Credit-pack purchases and provider callbacks
router.include_router(purchases.router)
router.include_router(webhooks.router)

# Referral codes
router.include_router(referrals.router)

# Include admin endpoints
router.include_router(admin.router)
