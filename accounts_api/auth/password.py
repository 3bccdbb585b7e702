"""
Password hashing with Argon2id.

The module-level hasher uses the default cost parameters; the credential
store builds its own from Settings (ARGON2_TIME_COST, ARGON2_MEMORY_COST,
ARGON2_PARALLELISM).
"""

import re
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128


def build_hasher(time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 4) -> PasswordHasher:
    """Argon2id hasher; memory_cost is in KiB."""
    return PasswordHasher(
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=32,
        salt_len=16,
    )


ph = build_hasher()


def hash_password(password: str, hasher: Optional[PasswordHasher] = None) -> str:
    """
    Hash a password using Argon2id.

    Returns:
        The encoded hash (algorithm, parameters, salt and digest)
    """
    return (hasher or ph).hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Return True if the password matches the stored hash."""
    try:
        ph.verify(password_hash, password)
        return True
    except VerifyMismatchError:
        return False
    except (VerificationError, InvalidHashError):
        # Malformed hash - treat as verification failure
        return False


def validate_password_strength(password: str) -> list[str]:
    """
    Return the list of unmet password requirements (empty when valid).

    Requirements:
    - 8 to 128 characters
    - At least one uppercase letter, one lowercase letter and one digit
    - At least one special character
    """
    issues = []

    if len(password) < PASSWORD_MIN_LEN:
        issues.append(f"at least {PASSWORD_MIN_LEN} characters")
    if len(password) > PASSWORD_MAX_LEN:
        issues.append(f"at most {PASSWORD_MAX_LEN} characters")
    if not re.search(r"[A-Z]", password):
        issues.append("one uppercase letter")
    if not re.search(r"[a-z]", password):
        issues.append("one lowercase letter")
    if not re.search(r"\d", password):
        issues.append("one digit")
    if not re.search(r"[@$!%*?&#^()_+\-=\[\]{}|;:,.<>/~]", password):
        issues.append("one special character")

    return issues
