"""
Opaque token helpers.

One-time tokens (password reset, email verification) are random values
whose SHA-256 digest is the only thing persisted. Stored refresh tokens use
the same digest.
"""

import hashlib
import secrets


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a token (fine for tokens, not for passwords)."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_one_time_token() -> tuple[str, str]:
    """
    Generate a new one-time token.

    Returns:
        (plaintext, digest): the plaintext goes to the user, the digest to the database
    """
    raw_token = secrets.token_bytes(32).hex()
    return raw_token, hash_token(raw_token)


def token_matches(token: str, token_hash: str) -> bool:
    return secrets.compare_digest(hash_token(token), token_hash)
