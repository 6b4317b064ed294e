"""
Authentication dependencies for FastAPI.

Protected routes depend on `get_current_user`; the webhook route is
authenticated by its payload signature instead.
"""

from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from creditcore.app.core.exceptions import AuthenticationError, InsufficientPermissionsError, TokenRevokedError
from creditcore.app.core.jwt import decode_access_token
from creditcore.app.core.token_revocation import is_token_revoked
from creditcore.app.db.session import get_db
from creditcore.app.models.account import Account

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    Resolve the calling account from its bearer token.

    Checks, in order:
    1. Token signature, expiry and claims
    2. Revocation list (logout)
    3. Account still exists and is active (a deactivated account loses
       access immediately, not at token expiry)

    Returns:
        Token claims (sub, account_id, role) plus the raw token under "token"

    Raises:
        AuthenticationError / TokenRevokedError: 401
        InsufficientPermissionsError: 403 for an inactive account
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    token = credentials.credentials
    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    if await is_token_revoked(token):
        raise TokenRevokedError()

    account = await db.get(Account, payload["account_id"])
    if account is None:
        raise AuthenticationError("Account not found")
    if not account.is_active:
        raise InsufficientPermissionsError("Account is inactive")

    return {**payload, "token": token}


def get_client_ip(request: Request) -> Optional[str]:
    """Client address recorded in audit entries."""
    return request.client.host if request.client else None
