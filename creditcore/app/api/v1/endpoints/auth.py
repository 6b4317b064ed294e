"""
Authentication API endpoints.

Provides register, login, logout and account info endpoints.
"""

import logging
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from creditcore.app.db.session import get_db
from creditcore.app.models.account import Account
from creditcore.app.schemas.auth import AccountRegister, AccountLogin, TokenResponse, RegisterResponse, AccountResponse
from creditcore.app.schemas.referral import ReferralResult
from creditcore.app.core.exceptions import (
    REFERRAL_ERRORS,
    AuthenticationError,
    InsufficientPermissionsError,
    StorageUnavailableError,
)
from creditcore.app.core.jwt import create_access_token
from creditcore.app.core.dependencies import get_current_user, get_client_ip
from creditcore.app.core.token_revocation import revoke_token
from creditcore.app.domain.credits.account_store import AccountStore
from creditcore.app.domain.referrals.referral_service import ReferralService
from creditcore.app.services.audit import log_event, log_auth_event, AuditAction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _issue_token(account: Account) -> str:
    jwt_payload = {
        "sub": account.email,
        "account_id": account.id,
        "role": account.role.value,
    }
    return create_access_token(data=jwt_payload)


async def _apply_referral(db: AsyncSession, account_id: int, code: str, ip_address: str) -> ReferralResult:
    """
    Redeem a referral code for a just-created account in its own unit of work.

    Any rejection is reported in the result instead of raised.
    """
    try:
        referral = await ReferralService.redeem(db, code, account_id)
        await log_event(
            db=db,
            action=AuditAction.REFERRAL_REDEEMED,
            actor_id=account_id,
            target_account_id=account_id,
            metadata={
                "referral_id": referral.id,
                "code": referral.code,
                "referrer_account_id": referral.referrer_account_id,
                "credits_granted": referral.credits_granted,
            },
            ip_address=ip_address
        )
        await db.commit()
    except REFERRAL_ERRORS as e:
        await db.rollback()
        logger.info("Referral code %s rejected for account %s: %s", code, account_id, e.error_code)
        return ReferralResult(applied=False, code=code, error_code=e.error_code, message=e.message)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Referral code %s could not be applied for account %s", code, account_id)
        error = StorageUnavailableError()
        return ReferralResult(applied=False, code=code, error_code=error.error_code, message=error.message)

    return ReferralResult(applied=True, code=referral.code, credits_granted=referral.credits_granted)


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    account_data: AccountRegister,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new account.

    - Email is unique case-insensitively (409 on conflict).
    - New accounts start with a zero balance.
    - An optional referral code is redeemed after the account is stored;
      its outcome is returned under `referral` and never fails the signup.
    """
    ip_address = get_client_ip(request)

    account = await AccountStore.create(
        db,
        email=account_data.email,
        password=account_data.password,
        name=account_data.name,
    )
    await log_event(
        db=db,
        action=AuditAction.ACCOUNT_CREATED,
        actor_id=account.id,
        actor_email=account.email,
        target_account_id=account.id,
        ip_address=ip_address
    )
    await db.commit()

    account_id = account.id

    referral_result = None
    if account_data.referral_code:
        referral_result = await _apply_referral(db, account_id, account_data.referral_code, ip_address)

    # Reload: the referral unit may have changed the balance or rolled back
    account = await db.get(Account, account_id, populate_existing=True)

    return RegisterResponse(
        access_token=_issue_token(account),
        token_type="bearer",
        account_id=account.id,
        email=account.email,
        role=account.role,
        balance=account.balance,
        referral=referral_result
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: AccountLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login and return JWT token.

    Logs successful and failed login attempts for security monitoring.
    """
    ip_address = get_client_ip(request)
    account = await AccountStore.find_by_email(db, credentials.email)

    if not account or not AccountStore.verify_password(account, credentials.password):
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            account_id=account.id if account else None,
            email=credentials.email,
            ip_address=ip_address,
            metadata={"reason": "Invalid credentials"}
        )
        await db.commit()
        raise AuthenticationError("Invalid credentials")

    if not account.is_active:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            account_id=account.id,
            email=account.email,
            ip_address=ip_address,
            metadata={"reason": "Account is inactive"}
        )
        await db.commit()
        raise InsufficientPermissionsError("Account is inactive")

    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        account_id=account.id,
        email=account.email,
        ip_address=ip_address
    )
    await db.commit()

    return TokenResponse(
        access_token=_issue_token(account),
        token_type="bearer",
        account_id=account.id,
        email=account.email,
        role=account.role,
        balance=account.balance
    )


@router.post("/logout")
async def logout(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Revoke the presented token."""
    account_id = current_user["account_id"]
    revoked = await revoke_token(current_user["token"], account_id)

    await log_auth_event(
        db=db,
        action=AuditAction.LOGOUT,
        account_id=account_id,
        email=current_user.get("sub"),
        ip_address=get_client_ip(request),
        metadata={"revoked": revoked}
    )
    await db.commit()

    return {"message": "Logged out", "revoked": revoked}


@router.get("/me", response_model=AccountResponse)
async def get_current_account_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get the authenticated account, including its current balance.

    Requires valid JWT token in Authorization header.
    """
    account = await AccountStore.get(db, current_user["account_id"])
    return AccountResponse.model_validate(account)
