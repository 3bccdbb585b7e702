"""
Session lifecycle: minting token pairs and rotating refresh tokens.

Every successful sign-in path (signup, login, password reset, password
update, refresh) ends in start_session, which issues a fresh pair and
records the refresh token's hash on the user.
"""

from jose import ExpiredSignatureError, JWTError

from accounts_api.auth.jwt import TokenIssuer, TokenPair
from accounts_api.auth.store import CredentialStore
from accounts_api.core.errors import AuthError
from accounts_api.core.logging import get_logger
from accounts_api.models.user import User

logger = get_logger(__name__)


class SessionService:
    """Ties the credential store to the token issuer."""

    def __init__(self, store: CredentialStore, issuer: TokenIssuer):
        self.store = store
        self.issuer = issuer

    async def start_session(self, user: User) -> TokenPair:
        """Issue a new access/refresh pair and remember the refresh token."""
        pair = self.issuer.issue_pair(user.id)
        await self.store.add_refresh_token(user, pair.refresh_token)
        return pair

    async def login(self, email: str, password: str) -> tuple[User, TokenPair]:
        user = await self.store.verify_credentials(email, password)
        pair = await self.start_session(user)
        logger.info("user_logged_in", user_id=user.id)
        return user, pair

    async def rotate(self, refresh_token: str) -> tuple[User, TokenPair]:
        """
        Exchange a stored refresh token for a new pair.

        The presented token stays in the user's list until the cap evicts it.

        Raises:
            AuthError: Invalid, expired, unknown or stale refresh token
        """
        try:
            payload = self.issuer.verify_refresh_token(refresh_token)
        except ExpiredSignatureError:
            logger.info("refresh_token_rejected", reason="expired")
            raise AuthError("Refresh token has expired")
        except JWTError:
            logger.info("refresh_token_rejected", reason="invalid")
            raise AuthError("Invalid refresh token")

        user = await self.store.get_active_user(payload.user_id)
        if user is None:
            logger.info("refresh_token_rejected", reason="unknown_user", user_id=payload.user_id)
            raise AuthError("Invalid refresh token")

        if not self.store.has_refresh_token(user, refresh_token):
            logger.warning("refresh_token_rejected", reason="not_stored", user_id=user.id)
            raise AuthError("Invalid refresh token")

        if user.changed_password_after(payload.iat):
            logger.info("refresh_token_rejected", reason="password_changed", user_id=user.id)
            raise AuthError("User recently changed password! Please log in again.")

        return user, await self.start_session(user)

    async def end_session(self, user: User, refresh_token: str | None) -> None:
        """Forget the presented refresh token, if any."""
        if refresh_token and await self.store.remove_refresh_token(user, refresh_token):
            logger.info("user_logged_out", user_id=user.id)
        else:
            logger.info("user_logged_out", user_id=user.id, revoked=False)
