"""
Authentication endpoints.

Provides:
- Signup and login (token pair in the body and in cookies)
- Refresh-token rotation
- Forgot/reset password with one-time tokens
- Email verification
- Logout and password update for signed-in users
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status

from accounts_api.auth.dependencies import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    get_app_settings,
    get_credential_store,
    get_current_user,
    get_email_sender,
    get_optional_user,
    get_session_service,
)
from accounts_api.auth.jwt import TokenPair
from accounts_api.auth.session import SessionService
from accounts_api.auth.store import CredentialStore
from accounts_api.core.config import Settings
from accounts_api.core.errors import AuthError, EmailDeliveryError, NotFoundError
from accounts_api.core.logging import get_logger
from accounts_api.models.user import User
from accounts_api.schemas.auth import (
    AuthResponse,
    AuthStatusResponse,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
)
from accounts_api.schemas.common import MessageResponse
from accounts_api.schemas.user import UserCreate, UserData, user_to_response
from accounts_api.services.email import EmailSender

logger = get_logger(__name__)

router = APIRouter()


def set_auth_cookies(response: Response, pair: TokenPair, settings: Settings) -> None:
    """Set the jwt and refreshToken HttpOnly cookies."""
    options = dict(httponly=True, secure=settings.is_production, samesite="strict", path="/")
    response.set_cookie(
        key=ACCESS_COOKIE,
        value=pair.access_token,
        max_age=settings.access_cookie_max_age,
        **options,
    )
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=pair.refresh_token,
        max_age=settings.refresh_cookie_max_age,
        **options,
    )


def auth_response(
    response: Response, user: User, pair: TokenPair, sessions: SessionService, settings: Settings
) -> AuthResponse:
    set_auth_cookies(response, pair, settings)
    return AuthResponse(
        token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=sessions.issuer.access_expires_in,
        data=UserData(user=user_to_response(user)),
    )


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    user_data: UserCreate,
    response: Response,
    store: CredentialStore = Depends(get_credential_store),
    sessions: SessionService = Depends(get_session_service),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_app_settings),
):
    """
    Register a new account and sign it in.

    A verification email is sent; failing to send it does not fail the signup.
    """
    user = await store.create_user(user_data)

    verification_token = await store.create_email_verification_token(user)
    if not await sender.send_welcome_email(user, verification_token):
        logger.warning("welcome_email_not_sent", user_id=user.id)

    pair = await sessions.start_session(user)
    logger.info("user_signed_up", user_id=user.id)
    return auth_response(response, user, pair, sessions, settings)


@router.post("/login", response_model=AuthResponse)
async def login(
    login_data: LoginRequest,
    response: Response,
    sessions: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Authenticate with email and password.

    Five consecutive failures lock the account (423) for two hours.
    """
    user, pair = await sessions.login(login_data.email, login_data.password)
    return auth_response(response, user, pair, sessions, settings)


@router.post("/refresh-token", response_model=AuthResponse)
async def refresh_token(
    request: Request,
    response: Response,
    token_data: Optional[RefreshTokenRequest] = None,
    sessions: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Exchange a refresh token for a new token pair.

    Accepts refresh token from:
    1. Request body (refreshToken)
    2. HttpOnly cookie (refreshToken)
    """
    token = (token_data.refresh_token if token_data else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise AuthError("No refresh token provided")

    user, pair = await sessions.rotate(token)
    return auth_response(response, user, pair, sessions, settings)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    store: CredentialStore = Depends(get_credential_store),
    sender: EmailSender = Depends(get_email_sender),
):
    """Email a password reset link valid for 10 minutes."""
    user = await store.get_by_email(body.email)
    if user is None:
        raise NotFoundError("There is no user with that email address.")

    reset_token = await store.create_password_reset_token(user)
    if not await sender.send_password_reset_email(user, reset_token):
        await store.clear_password_reset_token(user)
        raise EmailDeliveryError("There was an error sending the email. Try again later.")

    logger.info("password_reset_requested", user_id=user.id)
    return MessageResponse(message="Token sent to email!")


@router.patch("/reset-password/{token}", response_model=AuthResponse)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    response: Response,
    store: CredentialStore = Depends(get_credential_store),
    sessions: SessionService = Depends(get_session_service),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_app_settings),
):
    """Set a new password with a reset token and sign in."""
    user = await store.consume_reset_token(token, body.password, body.password_confirm)
    await sender.send_password_changed_email(user)
    pair = await sessions.start_session(user)
    return auth_response(response, user, pair, sessions, settings)


@router.get("/verify-email/{token}", response_model=MessageResponse)
async def verify_email(
    token: str,
    store: CredentialStore = Depends(get_credential_store),
):
    await store.consume_email_verification_token(token)
    return MessageResponse(message="Email verified successfully!")


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    token_data: Optional[RefreshTokenRequest] = None,
    current_user: User = Depends(get_current_user),
    sessions: SessionService = Depends(get_session_service),
):
    """
    Revoke the presented refresh token and overwrite both cookies.

    Access tokens stay valid until they expire; clients should discard them.
    """
    token = (token_data.refresh_token if token_data else None) or request.cookies.get(REFRESH_COOKIE)
    await sessions.end_session(current_user, token)

    for key in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.set_cookie(key=key, value="loggedout", max_age=10, httponly=True, path="/")

    return MessageResponse(message="Logged out successfully")


@router.patch("/update-password", response_model=AuthResponse)
async def update_password(
    body: UpdatePasswordRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    store: CredentialStore = Depends(get_credential_store),
    sessions: SessionService = Depends(get_session_service),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_app_settings),
):
    """Change the current user's password and issue a fresh token pair."""
    await store.update_password(
        current_user, body.password_current, body.password, body.password_confirm
    )
    await sender.send_password_changed_email(current_user)
    pair = await sessions.start_session(current_user)
    return auth_response(response, current_user, pair, sessions, settings)


@router.get("/status", response_model=AuthStatusResponse)
async def auth_status(user: Optional[User] = Depends(get_optional_user)):
    """Report whether the request carries a valid session; never fails."""
    return AuthStatusResponse(
        authenticated=user is not None,
        data=UserData(user=user_to_response(user)) if user else None,
    )
