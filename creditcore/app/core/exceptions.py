"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
Every business-rule violation of the accounting core is an AppException
subclass so endpoints can let them propagate to the handler unchanged.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised for malformed input that passed schema validation."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class TokenRevokedError(AppException):
    """Raised when token has been revoked."""

    def __init__(self):
        super().__init__(
            message="Token has been revoked",
            error_code="ERR_AUTH_002",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


# Account Store

class DuplicateEmailError(AppException):
    """Raised when an account with the same (case-insensitive) email exists."""

    def __init__(self, email: str):
        super().__init__(
            message="Email already registered",
            error_code="ERR_ACCOUNT_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"email": email}
        )


class InsufficientBalanceError(AppException):
    """Raised when a debit would take the balance below zero."""

    def __init__(self, account_id: int, delta: int):
        super().__init__(
            message="Credits exhausted",
            error_code="ERR_CREDITS_EXHAUSTED",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details={"account_id": account_id, "requested_delta": delta}
        )


# Transactions & Webhooks

class InvalidSignatureError(AppException):
    """Raised when a webhook payload fails signature verification."""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(
            message=message,
            error_code="ERR_WEBHOOK_001",
            status_code=status.HTTP_400_BAD_REQUEST
        )


class AlreadyFinalizedError(AppException):
    """Raised on an illegal transition out of a terminal transaction status."""

    def __init__(self, transaction_id: int, current_status: str):
        super().__init__(
            message=f"Transaction {transaction_id} is already {current_status}",
            error_code="ERR_TXN_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"transaction_id": transaction_id, "status": current_status}
        )


class AlreadyBoundError(AppException):
    """Raised when an external payment id conflicts with an existing binding."""

    def __init__(self, transaction_id: int, external_payment_id: str):
        super().__init__(
            message="External payment id is already bound",
            error_code="ERR_TXN_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"transaction_id": transaction_id, "external_payment_id": external_payment_id}
        )


class PaymentProviderError(AppException):
    """Raised when the payment provider cannot open a checkout."""

    def __init__(self, message: str = "Payment provider unavailable"):
        super().__init__(
            message=message,
            error_code="ERR_PAYMENT_001",
            status_code=status.HTTP_502_BAD_GATEWAY
        )


class StorageUnavailableError(AppException):
    """Raised for transient storage failures. Callers may retry."""

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(
            message=message,
            error_code="ERR_STORAGE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


# Referrals

class CodeNotFoundError(AppException):
    def __init__(self, code: str):
        super().__init__(
            message="Invalid referral code",
            error_code="ERR_REFERRAL_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"code": code}
        )


class AlreadyRedeemedError(AppException):
    def __init__(self, code: str):
        super().__init__(
            message="Referral code already used",
            error_code="ERR_REFERRAL_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"code": code}
        )


class SelfReferralError(AppException):
    def __init__(self, code: str):
        super().__init__(
            message="Cannot use your own referral code",
            error_code="ERR_REFERRAL_003",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"code": code}
        )


class DuplicateReferrerPairError(AppException):
    def __init__(self, code: str):
        super().__init__(
            message="A referral from this referrer was already redeemed by this account",
            error_code="ERR_REFERRAL_004",
            status_code=status.HTTP_409_CONFLICT,
            details={"code": code}
        )


REFERRAL_ERRORS = (
    CodeNotFoundError,
    AlreadyRedeemedError,
    SelfReferralError,
    DuplicateReferrerPairError,
)


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        402: "ERR_CREDITS_EXHAUSTED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
