"""
User-related schemas.

The update schemas double as the allow-lists of fields a caller may change:
anything not declared on them is rejected.
"""

import re
from datetime import date, datetime
from typing import Any, List, Literal, Optional

from pydantic import ConfigDict, EmailStr, Field, field_validator, model_validator

from accounts_api.auth.password import validate_password_strength
from accounts_api.models.user import UserRole
from accounts_api.schemas.common import CamelModel, Pagination

USERNAME_PATTERN = r"^[a-zA-Z0-9_-]+$"
NAME_PATTERN = re.compile(r"^[a-zA-Z\s]+$")
PASSWORD_FIELDS = {"password", "passwordConfirm", "password_confirm"}


def check_password_strength(v: str) -> str:
    issues = validate_password_strength(v)
    if issues:
        raise ValueError(f"Password must contain: {', '.join(issues)}")
    return v


def check_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if not NAME_PATTERN.match(v):
        raise ValueError("Name can only contain letters and spaces")
    return v


def _normalize_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    return v.lower().strip()


class NotificationPreferences(CamelModel):
    email: bool = True
    push: bool = True


class Preferences(CamelModel):
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    theme: Literal["light", "dark", "auto"] = "auto"
    language: str = Field(default="en", min_length=2, max_length=5)


class Profile(CamelModel):
    bio: Optional[str] = Field(default=None, max_length=500)
    website: Optional[str] = Field(default=None, pattern=r"^https?://.+")
    location: Optional[str] = Field(default=None, max_length=100)
    date_of_birth: Optional[date] = None
    phone: Optional[str] = Field(default=None, pattern=r"^\+?[1-9]\d{1,14}$")


class UserCreate(CamelModel):
    """Signup payload."""

    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    password: str = Field(max_length=128)
    password_confirm: str

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return check_name(v)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "UserCreate":
        if self.password != self.password_confirm:
            raise ValueError("Passwords are not the same!")
        return self


class AdminUserCreate(UserCreate):
    """Admin-created account; may set the role directly."""

    role: UserRole = UserRole.USER


class UserSelfUpdate(CamelModel):
    """Fields a user may change on their own account."""

    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    username: Optional[str] = Field(default=None, min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    avatar: Optional[str] = Field(default=None, pattern=r"^https?://.+")
    preferences: Optional[Preferences] = None
    profile: Optional[Profile] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return check_name(v)

    @model_validator(mode="before")
    @classmethod
    def reject_password_fields(cls, data: Any) -> Any:
        if isinstance(data, dict) and PASSWORD_FIELDS & set(data):
            raise ValueError(
                "This route is not for password updates. Please use /update-password."
            )
        return data


class UserAdminUpdate(CamelModel):
    """Fields an admin may change on any account (never the password)."""

    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    username: Optional[str] = Field(default=None, min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    avatar: Optional[str] = Field(default=None, pattern=r"^https?://.+")
    role: Optional[UserRole] = None
    active: Optional[bool] = None
    email_verified: Optional[bool] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return check_name(v)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_email(v)

    @model_validator(mode="before")
    @classmethod
    def reject_password_fields(cls, data: Any) -> Any:
        if isinstance(data, dict) and PASSWORD_FIELDS & set(data):
            raise ValueError("Password cannot be updated through this endpoint")
        return data


# Static allow-lists derived from the schemas above
SELF_MUTABLE_FIELDS = frozenset(UserSelfUpdate.model_fields)
ADMIN_MUTABLE_FIELDS = frozenset(UserAdminUpdate.model_fields)


class UserResponse(CamelModel):
    """User as returned by the API (no secrets)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    full_name: str
    email: str
    username: str
    role: UserRole
    avatar: Optional[str] = None
    email_verified: bool
    active: bool
    last_login: Optional[datetime] = None
    preferences: dict = Field(default_factory=dict)
    profile: dict = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class UserData(CamelModel):
    user: UserResponse


class UserEnvelope(CamelModel):
    status: str = "success"
    data: UserData


class UserListData(CamelModel):
    users: List[UserResponse]


class UserListResponse(CamelModel):
    status: str = "success"
    results: int
    pagination: Pagination
    data: UserListData


class UserStats(CamelModel):
    total_users: int = 0
    active_users: int = 0
    verified_users: int = 0
    admin_users: int = 0


class DailySignups(CamelModel):
    day: date
    count: int


class UserStatsData(CamelModel):
    stats: UserStats
    recent_signups: List[DailySignups]


class UserStatsResponse(CamelModel):
    status: str = "success"
    data: UserStatsData


def user_to_response(user) -> UserResponse:
    return UserResponse.model_validate(user)
