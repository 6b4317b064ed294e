"""
Audit logging service for tracking security events and credit operations.

Provides centralized logging for compliance and dispute resolution.
Audit rows join the caller's unit of work: they are flushed here and
committed (or rolled back) together with the mutation they describe.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from creditcore.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"

    # Purchases
    PURCHASE_CREATED = "PURCHASE_CREATED"
    PURCHASE_FAILED = "PURCHASE_FAILED"
    CREDITS_PURCHASED = "CREDITS_PURCHASED"

    # Operator actions
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"
    BALANCE_RECONCILED = "BALANCE_RECONCILED"

    # Referrals
    REFERRAL_CODE_ISSUED = "REFERRAL_CODE_ISSUED"
    REFERRAL_REDEEMED = "REFERRAL_REDEEMED"
    REFERRER_CREDITED = "REFERRER_CREDITED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_email: Optional[str] = None,
    target_account_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Add an event to the audit log within the current unit of work.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of account performing the action (None for system)
        actor_email: Email of actor
        target_account_id: ID of account affected (if applicable)
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance (flushed, not committed)
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_email=actor_email,
        action=action,
        target_account_id=target_account_id,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def log_auth_event(
    db: AsyncSession,
    action: str,
    account_id: Optional[int],
    email: Optional[str],
    ip_address: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log an authentication event (login success/failure, logout).

    Args:
        db: Database session
        action: AuditAction.LOGIN_SUCCESS, LOGIN_FAILED or LOGOUT
        account_id: ID of account attempting login
        email: Email attempting login
        ip_address: IP address of login attempt
        metadata: Additional context (e.g., failure reason)

    Returns:
        Created AuditLog instance
    """
    return await log_event(
        db=db,
        action=action,
        actor_id=account_id,
        actor_email=email,
        target_account_id=account_id,
        ip_address=ip_address,
        metadata=metadata
    )


async def get_audit_trail(
    db: AsyncSession,
    target_account_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        target_account_id: Filter by affected account ID
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.id))

    if target_account_id:
        query = query.where(AuditLog.target_account_id == target_account_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
