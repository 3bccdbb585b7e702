"""
Pydantic schemas for API request/response validation.

JSON field names are camelCase; Python attributes stay snake_case.
"""

from accounts_api.schemas.auth import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
)
from accounts_api.schemas.user import (
    AdminUserCreate,
    UserAdminUpdate,
    UserCreate,
    UserResponse,
    UserSelfUpdate,
)
from accounts_api.schemas.common import (
    ErrorResponse,
    MessageResponse,
    Pagination,
)

__all__ = [
    # Auth
    "AuthResponse",
    "ForgotPasswordRequest",
    "LoginRequest",
    "RefreshTokenRequest",
    "ResetPasswordRequest",
    "UpdatePasswordRequest",
    # User
    "AdminUserCreate",
    "UserAdminUpdate",
    "UserCreate",
    "UserResponse",
    "UserSelfUpdate",
    # Common
    "ErrorResponse",
    "MessageResponse",
    "Pagination",
]
