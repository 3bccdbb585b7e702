"""
Domain errors raised by the auth components.

Each error carries the HTTP status and a stable error code; the handlers in
accounts_api.main turn them into JSON responses.
"""

from typing import Optional


class ServiceError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(self, message: str, *, details: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ServiceError):
    """Malformed input (400)."""
    status_code = 400
    error_code = "validation_error"


class ConflictError(ServiceError):
    """Duplicate email or username (400)."""
    status_code = 400
    error_code = "conflict"


class InvalidTokenError(ServiceError):
    """One-time token unknown, already used or expired (400)."""
    status_code = 400
    error_code = "invalid_token"


class AuthError(ServiceError):
    """Missing, invalid, expired or revoked credential (401)."""
    status_code = 401
    error_code = "unauthorized"


class ForbiddenError(ServiceError):
    """Authenticated but the role is not allowed (403)."""
    status_code = 403
    error_code = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    error_code = "not_found"


class AccountLockedError(ServiceError):
    """Too many failed logins; the account is temporarily locked (423)."""
    status_code = 423
    error_code = "account_locked"


class EmailDeliveryError(ServiceError):
    """Outgoing email could not be sent (500)."""
    status_code = 500
    error_code = "email_delivery_failed"


def validation_messages(errors: list) -> list[str]:
    """Flatten pydantic error dicts into "field: message" strings."""
    messages = []
    for error in errors:
        loc = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        msg = error.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return messages


__all__ = [
    "ServiceError",
    "ValidationError",
    "ConflictError",
    "InvalidTokenError",
    "AuthError",
    "ForbiddenError",
    "NotFoundError",
    "AccountLockedError",
    "EmailDeliveryError",
    "validation_messages",
]
