"""
JWT token issuing and verification.

Security measures:
- Access and refresh tokens are signed with different secrets
- Token type, issuer and audience are validated on every decode
- iat keeps sub-second precision so a password change invalidates tokens
  minted earlier in the same second
- Every token has a unique jti, so two tokens are never byte-identical
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from accounts_api.core.config import Settings

ACCESS = "access"
REFRESH = "refresh"


class TokenPayload(BaseModel):
    """Decoded JWT claims."""
    sub: str                # User ID
    type: str               # "access" or "refresh"
    iat: float              # Issued at (epoch seconds, fractional)
    exp: datetime
    iss: str
    aud: str
    jti: Optional[str] = None

    @property
    def user_id(self) -> int:
        return int(self.sub)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str


class TokenIssuer:
    """Mints and verifies access/refresh tokens for one configuration."""

    def __init__(self, settings: Settings):
        self.algorithm = settings.jwt_algorithm
        self.issuer = settings.token_issuer
        self.audience = settings.token_audience
        self._secrets = {
            ACCESS: settings.jwt_secret.get_secret_value(),
            REFRESH: settings.jwt_refresh_secret.get_secret_value(),
        }
        self._lifetimes = {
            ACCESS: timedelta(minutes=settings.access_token_expire_minutes),
            REFRESH: timedelta(days=settings.refresh_token_expire_days),
        }

    @property
    def access_expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return int(self._lifetimes[ACCESS].total_seconds())

    def _issue(self, token_type: str, user_id: int, issued_at: Optional[datetime]) -> str:
        now = issued_at or datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "type": token_type,
            "iat": now.timestamp(),
            "exp": now + self._lifetimes[token_type],
            "iss": self.issuer,
            "aud": self.audience,
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self._secrets[token_type], algorithm=self.algorithm)

    def issue_access_token(self, user_id: int, issued_at: Optional[datetime] = None) -> str:
        """Create a short-lived access token for a user."""
        return self._issue(ACCESS, user_id, issued_at)

    def issue_refresh_token(self, user_id: int, issued_at: Optional[datetime] = None) -> str:
        """
        Create a longer-lived refresh token.

        The caller is responsible for storing its hash on the user so it
        can be revoked.
        """
        return self._issue(REFRESH, user_id, issued_at)

    def issue_pair(self, user_id: int) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(user_id),
            refresh_token=self.issue_refresh_token(user_id),
        )

    def verify(self, token: str, expected_type: str = ACCESS) -> TokenPayload:
        """
        Verify and decode a token of the given type.

        Raises:
            ExpiredSignatureError: If the token has expired
            JWTError: If the token is otherwise invalid or of the wrong type
        """
        payload = jwt.decode(
            token,
            self._secrets[expected_type],
            algorithms=[self.algorithm],
            audience=self.audience,
            issuer=self.issuer,
        )

        if payload.get("type") != expected_type:
            raise JWTError(f"Invalid token type. Expected {expected_type}, got {payload.get('type')}")

        try:
            return TokenPayload(
                sub=payload["sub"],
                type=payload["type"],
                iat=float(payload["iat"]),
                exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                iss=payload["iss"],
                aud=payload["aud"],
                jti=payload.get("jti"),
            )
        except (KeyError, TypeError, ValueError):
            raise JWTError("Invalid token payload")

    def verify_access_token(self, token: str) -> TokenPayload:
        return self.verify(token, ACCESS)

    def verify_refresh_token(self, token: str) -> TokenPayload:
        return self.verify(token, REFRESH)
