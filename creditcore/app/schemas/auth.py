"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional
from creditcore.app.models.enums import AccountRole
from creditcore.app.schemas.referral import ReferralResult


class AccountRegister(BaseModel):
    """
    Schema for account registration.

    Used by POST /auth/register endpoint.
    A referral code is optional; an unusable code never blocks signup.
    """
    email: EmailStr = Field(..., description="Account email address")
    password: str = Field(..., min_length=6, max_length=72, description="Password (6-72 characters)")
    name: Optional[str] = Field(default=None, max_length=255, description="Display name")
    referral_code: Optional[str] = Field(default=None, max_length=32, description="Referral code of an existing account")


class AccountLogin(BaseModel):
    """
    Schema for account login.

    Used by POST /auth/login endpoint.
    """
    email: EmailStr = Field(..., description="Account email address")
    password: str = Field(..., description="Password")


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by successful login/register operations.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    account_id: int = Field(..., description="Account ID")
    email: str = Field(..., description="Email address")
    role: AccountRole = Field(..., description="Account role")
    balance: int = Field(..., description="Current credit balance")


class RegisterResponse(TokenResponse):
    """Token response plus the outcome of the optional referral code."""
    referral: Optional[ReferralResult] = None


class AccountResponse(BaseModel):
    """
    Schema for account information response.

    Used by GET /auth/me endpoint.
    """
    id: int
    email: str
    name: Optional[str] = None
    provider: str
    role: AccountRole
    is_active: bool
    balance: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True  # Pydantic v2 (was orm_mode in v1)
