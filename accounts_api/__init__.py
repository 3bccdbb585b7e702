"""
Accounts API - user registration, authentication and account management.
"""

__version__ = "1.0.0"
