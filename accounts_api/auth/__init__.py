"""
Authentication and Authorization module.

Provides:
- JWT token generation and validation
- Password hashing (Argon2id)
- One-time token helpers

The request-time pieces (credential store, session service, FastAPI
dependencies) live in their own modules and are imported from there.
"""

from accounts_api.auth.jwt import (
    ACCESS,
    REFRESH,
    TokenIssuer,
    TokenPair,
    TokenPayload,
)
from accounts_api.auth.password import (
    hash_password,
    validate_password_strength,
    verify_password,
)
from accounts_api.auth.tokens import (
    generate_one_time_token,
    hash_token,
)

__all__ = [
    # JWT
    "ACCESS",
    "REFRESH",
    "TokenIssuer",
    "TokenPair",
    "TokenPayload",
    # Password
    "hash_password",
    "verify_password",
    "validate_password_strength",
    # One-time tokens
    "generate_one_time_token",
    "hash_token",
]
