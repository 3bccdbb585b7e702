"""
User and refresh-token models.

Security considerations:
- Passwords are stored as Argon2id hashes only
- Refresh tokens and one-time tokens are stored as SHA-256 digests
- Deactivated users keep their row (active = False)
- All timestamps are UTC
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from accounts_api.core.database import Base, UTCDateTime, utcnow


class UserRole(str, PyEnum):
    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"


def default_preferences() -> dict:
    return {
        "notifications": {"email": True, "push": True},
        "theme": "auto",
        "language": "en",
    }


class User(Base):
    """
    Account record owned by the credential store.

    Lockout state (login_attempts, lock_until) and the one-time token
    hashes live on the row itself.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Identity
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    username: Mapped[str] = mapped_column(String(30), unique=True, index=True, nullable=False)
    avatar: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False, default=UserRole.USER, index=True)

    # Authentication
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    password_changed_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    # Lockout
    login_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lock_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Status
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # One-time tokens (hashes)
    password_reset_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    password_reset_expires: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    email_verification_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    email_verification_expires: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Free-form profile data
    preferences: Mapped[dict] = mapped_column(JSON, default=default_preferences, nullable=False)
    profile: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)

    refresh_tokens: Mapped[List["RefreshToken"]] = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="RefreshToken.id",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        """Check if the account is locked due to failed login attempts."""
        if self.lock_until is None:
            return False
        return (now or utcnow()) < self.lock_until

    def changed_password_after(self, issued_at: float) -> bool:
        """True if the password changed after a token with this iat was issued."""
        if self.password_changed_at is None:
            return False
        return issued_at < self.password_changed_at.timestamp()


class RefreshToken(Base):
    """One stored refresh token (hash only)."""

    __tablename__ = "refresh_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="refresh_tokens")

    def __repr__(self) -> str:
        return f"<RefreshToken user={self.user_id} at {self.created_at}>"
