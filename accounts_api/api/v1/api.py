"""
API Router configuration.

Aggregates all v1 API endpoints with proper tagging and prefixes.
"""

from fastapi import APIRouter

from accounts_api.api.v1.endpoints import auth, users

api_router = APIRouter()

# Authentication (signup, login, token refresh and password flows)
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["authentication"]
)

# Current-user profile and admin user management
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"]
)
