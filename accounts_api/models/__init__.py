"""
Database models.
"""

from accounts_api.models.user import RefreshToken, User, UserRole

__all__ = [
    "User",
    "UserRole",
    "RefreshToken",
]
