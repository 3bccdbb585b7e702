"""
Authentication-related schemas.
"""

from typing import Optional

from pydantic import EmailStr, Field, field_validator, model_validator

from accounts_api.schemas.common import CamelModel
from accounts_api.schemas.user import UserData, check_password_strength


class LoginRequest(CamelModel):
    """Login request with email and password."""

    email: EmailStr = Field(description="User email address")
    password: str = Field(min_length=1, max_length=128, description="User password")

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower().strip()


class AuthResponse(CamelModel):
    """Token pair plus the authenticated user."""

    status: str = "success"
    token: str = Field(description="JWT access token")
    refresh_token: str = Field(description="JWT refresh token")
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")
    data: UserData


class RefreshTokenRequest(CamelModel):
    """Refresh token in the body; the refreshToken cookie is used when absent."""

    refresh_token: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower().strip()


class NewPasswordMixin(CamelModel):
    password: str = Field(max_length=128)
    password_confirm: str

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.password_confirm:
            raise ValueError("Passwords are not the same!")
        return self


class ResetPasswordRequest(NewPasswordMixin):
    """New password submitted with a reset token."""


class UpdatePasswordRequest(NewPasswordMixin):
    """Password change for a signed-in user."""

    password_current: str = Field(min_length=1, max_length=128)


class AuthStatusResponse(CamelModel):
    """Session check for clients that render differently when signed in."""

    status: str = "success"
    authenticated: bool
    data: Optional[UserData] = None
