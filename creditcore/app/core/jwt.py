"""
JWT access tokens for accounts.

Claims: sub (email), account_id, role, plus exp, iat and a per-token jti so
two tokens issued in the same second can be revoked independently.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from creditcore.app.core.config import settings

REQUIRED_CLAIMS = ("sub", "account_id", "role")


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign an access token.

    Args:
        data: Account claims; must include sub, account_id and role
        expires_delta: Lifetime, defaults to settings.access_token_expire_minutes

    Example payload:
        {"sub": "someone@example.com", "account_id": 123, "role": "USER", "exp": ..., "iat": ..., "jti": "..."}
    """
    missing = [claim for claim in REQUIRED_CLAIMS if claim not in data]
    if missing:
        raise ValueError(f"Missing token claims: {', '.join(missing)}")

    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)

    claims = dict(data)
    claims.update({
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "jti": uuid.uuid4().hex,
    })
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Verified claims, or None for a bad signature, an expired token or missing claims."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    if any(payload.get(claim) is None for claim in REQUIRED_CLAIMS):
        return None
    return payload
