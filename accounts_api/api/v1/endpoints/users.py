"""
User management endpoints.

Every route requires a signed-in user; the administration routes also
require the admin role.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from accounts_api.auth.dependencies import get_credential_store, get_current_user, require_role
from accounts_api.auth.store import CredentialStore
from accounts_api.core.errors import NotFoundError
from accounts_api.core.logging import get_logger
from accounts_api.models.user import User, UserRole
from accounts_api.schemas.common import Pagination
from accounts_api.schemas.user import (
    AdminUserCreate,
    UserAdminUpdate,
    UserData,
    UserEnvelope,
    UserListData,
    UserListResponse,
    UserSelfUpdate,
    UserStatsResponse,
    user_to_response,
)

logger = get_logger(__name__)

router = APIRouter()

require_admin = require_role(UserRole.ADMIN)

# JSON sub-documents are stored with their camelCase keys
_NESTED_FIELDS = ("preferences", "profile")


def _changes(body) -> dict:
    """Fields the client actually sent, ready to assign to the model."""
    changes = body.model_dump(exclude_unset=True, exclude_none=True, exclude=set(_NESTED_FIELDS))
    for name in _NESTED_FIELDS:
        value = getattr(body, name, None)
        if name in body.model_fields_set and value is not None:
            changes[name] = value.model_dump(mode="json", by_alias=True)
    return changes


def _envelope(user: User) -> UserEnvelope:
    return UserEnvelope(data=UserData(user=user_to_response(user)))


async def _get_or_404(store: CredentialStore, user_id: int) -> User:
    user = await store.get_user(user_id)
    if user is None:
        raise NotFoundError("No user found with that ID")
    return user


# =============================================================================
# Current user
# =============================================================================

@router.get("/me", response_model=UserEnvelope)
async def get_me(current_user: User = Depends(get_current_user)):
    return _envelope(current_user)


@router.patch("/update-me", response_model=UserEnvelope)
async def update_me(
    body: UserSelfUpdate,
    current_user: User = Depends(get_current_user),
    store: CredentialStore = Depends(get_credential_store),
):
    """
    Update the current user's profile.

    Password fields are rejected; use /auth/update-password.
    """
    user = await store.update_profile(current_user, _changes(body))
    return _envelope(user)


@router.delete("/delete-me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(
    current_user: User = Depends(get_current_user),
    store: CredentialStore = Depends(get_credential_store),
):
    """Deactivate the current user's account. The record is kept."""
    await store.deactivate(current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Administration
# =============================================================================

@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: str = Query("-createdAt", max_length=100),
    role: Optional[UserRole] = None,
    active: Optional[bool] = None,
    email_verified: Optional[bool] = Query(None, alias="emailVerified"),
    search: Optional[str] = Query(None, max_length=100),
    current_user: User = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
):
    """
    List users with pagination, filtering and sorting.

    sort takes comma-separated field names; a leading "-" sorts descending.
    """
    users, total = await store.list_users(
        page=page,
        limit=limit,
        sort=sort,
        role=role,
        active=active,
        email_verified=email_verified,
        search=search,
    )
    return UserListResponse(
        results=len(users),
        pagination=Pagination.create(page=page, limit=limit, total=total),
        data=UserListData(users=[user_to_response(user) for user in users]),
    )


@router.post("", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: AdminUserCreate,
    current_user: User = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
):
    user = await store.create_user(user_data)
    logger.info("user_created_by_admin", user_id=user.id, admin_id=current_user.id)
    return _envelope(user)


@router.get("/stats", response_model=UserStatsResponse)
async def user_stats(
    current_user: User = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
):
    """Totals plus signups per day over the last 30 days."""
    return UserStatsResponse(data=await store.stats())


@router.get("/{user_id}", response_model=UserEnvelope)
async def get_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
):
    return _envelope(await _get_or_404(store, user_id))


@router.patch("/{user_id}", response_model=UserEnvelope)
async def update_user(
    user_id: int,
    body: UserAdminUpdate,
    current_user: User = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
):
    """Update any account. Passwords cannot be changed here."""
    user = await _get_or_404(store, user_id)
    user = await store.admin_update(user, _changes(body))
    return _envelope(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
):
    """Permanently delete an account."""
    user = await _get_or_404(store, user_id)
    await store.delete_user(user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
