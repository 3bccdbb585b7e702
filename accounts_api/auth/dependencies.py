"""
FastAPI dependencies for authentication and authorization.

Provides:
- get_credential_store / get_session_service: per-request components
- get_current_user: Extract and validate the user behind an access token
- get_optional_user: Same, but anonymous requests get None
- require_role: Restrict an endpoint to specific roles
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_api.auth.jwt import TokenIssuer
from accounts_api.auth.session import SessionService
from accounts_api.auth.store import CredentialStore
from accounts_api.core.config import Settings
from accounts_api.core.database import get_db
from accounts_api.core.errors import AuthError, ForbiddenError
from accounts_api.core.logging import get_logger
from accounts_api.models.user import User, UserRole
from accounts_api.services.email import EmailSender

logger = get_logger(__name__)

# HTTP Bearer token extractor
security = HTTPBearer(auto_error=False)

ACCESS_COOKIE = "jwt"
REFRESH_COOKIE = "refreshToken"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


def get_credential_store(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> CredentialStore:
    """Credential store bound to this request's session."""
    return CredentialStore(db, settings)


def get_session_service(
    store: CredentialStore = Depends(get_credential_store),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> SessionService:
    return SessionService(store, issuer)


def extract_token(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    """Bearer header first, then the jwt cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(ACCESS_COOKIE) or None


async def authenticate_token(
    token: Optional[str], store: CredentialStore, issuer: TokenIssuer
) -> User:
    """
    Resolve an access token to an active user.

    Raises:
        AuthError 401: Missing, invalid or expired token; user gone or
            deactivated; password changed after the token was issued
    """
    if not token:
        raise AuthError("You are not logged in! Please log in to get access.")

    try:
        payload = issuer.verify_access_token(token)
    except ExpiredSignatureError:
        raise AuthError("Token has expired")
    except JWTError:
        raise AuthError("Invalid token")

    user = await store.get_user(payload.user_id)
    if user is None:
        raise AuthError("The user belonging to this token does no longer exist.")

    if not user.active:
        raise AuthError("Your account has been deactivated. Please contact support.")

    if user.changed_password_after(payload.iat):
        raise AuthError("User recently changed password! Please log in again.")

    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: CredentialStore = Depends(get_credential_store),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> User:
    """
    Extract and validate the current user from JWT token.

    Looks for token in:
    1. Authorization: Bearer <token> header
    2. Cookie: jwt
    """
    user = await authenticate_token(extract_token(request, credentials), store, issuer)
    request.state.user = user
    return user


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: CredentialStore = Depends(get_credential_store),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Optional[User]:
    """
    Try to get current user, but return None if not authenticated.
    Useful for endpoints that work differently for authenticated vs anonymous users.
    """
    try:
        return await get_current_user(request, credentials, store, issuer)
    except AuthError:
        return None


def require_role(*allowed_roles: UserRole):
    """
    Dependency to require specific role(s).

    Usage:
        @router.get("/admin-only")
        async def admin_endpoint(
            user: User = Depends(require_role(UserRole.ADMIN))
        ):
            ...
    """
    async def role_checker(
        current_user: User = Depends(get_current_user),
    ) -> User:
        if current_user.role not in allowed_roles:
            logger.info(
                "permission_denied",
                user_id=current_user.id,
                role=current_user.role.value,
            )
            raise ForbiddenError("You do not have permission to perform this action")
        return current_user

    return role_checker
