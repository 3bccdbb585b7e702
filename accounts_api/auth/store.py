"""
Credential store: the only component that reads or writes user records.

A store wraps one AsyncSession and is built per request by the
get_credential_store dependency. Password hashing is an explicit call made
here (never an ORM hook) and runs in the thread pool so Argon2 does not
block the event loop. Reads exclude deactivated users unless a method says
otherwise.
"""

from collections import Counter
from datetime import timedelta
from typing import Any, Iterable, List, Optional, Tuple, Union

import pydantic
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import case, func, literal, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_api.auth.password import (
    build_hasher,
    hash_password,
    validate_password_strength,
    verify_password,
)
from accounts_api.auth.tokens import generate_one_time_token, hash_token, token_matches
from accounts_api.core.config import Settings
from accounts_api.core.database import UTCDateTime, utcnow
from accounts_api.core.errors import (
    AccountLockedError,
    AuthError,
    ConflictError,
    InvalidTokenError,
    ValidationError,
    validation_messages,
)
from accounts_api.core.logging import get_logger
from accounts_api.models.user import RefreshToken, User, UserRole, default_preferences
from accounts_api.schemas.user import (
    ADMIN_MUTABLE_FIELDS,
    SELF_MUTABLE_FIELDS,
    DailySignups,
    UserCreate,
    UserStats,
    UserStatsData,
)

logger = get_logger(__name__)

# password_changed_at is set slightly in the past so a token minted right
# after the change is still newer than it
PASSWORD_CHANGE_SKEW = timedelta(milliseconds=1)

INVALID_CREDENTIALS = "Incorrect email or password"
INVALID_ONE_TIME_TOKEN = "Token is invalid or has expired"

SORT_FIELDS = {
    "createdAt": User.created_at,
    "updatedAt": User.updated_at,
    "lastLogin": User.last_login,
    "email": User.email,
    "username": User.username,
    "firstName": User.first_name,
    "lastName": User.last_name,
    "role": User.role,
}


def _parse_sort(sort: str) -> list:
    """Turn "-createdAt,email" into ORDER BY clauses."""
    clauses = []
    for part in sort.split(","):
        part = part.strip()
        if not part:
            continue
        descending = part.startswith("-")
        name = part.lstrip("-+")
        column = SORT_FIELDS.get(name)
        if column is None:
            raise ValidationError(f"Cannot sort by '{name}'")
        clauses.append(column.desc() if descending else column.asc())
    clauses.append(User.id.asc())
    return clauses


def _check_new_password(password: str, password_confirm: str) -> None:
    issues = validate_password_strength(password)
    if issues:
        raise ValidationError(f"Password must contain: {', '.join(issues)}")
    if password != password_confirm:
        raise ValidationError("Passwords are not the same!")


class CredentialStore:
    """User persistence, lockout bookkeeping and one-time tokens."""

    def __init__(self, session: AsyncSession, settings: Settings):
        self.db = session
        self.settings = settings
        self.hasher = build_hasher(
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost,
            parallelism=settings.argon2_parallelism,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_user(self, user_id: int) -> Optional[User]:
        """Load a user by id, including deactivated accounts."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_active_user(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id, User.active.is_(True))
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        """Load an active user by (case-insensitive) email."""
        result = await self.db.execute(
            select(User).where(User.email == email.strip().lower(), User.active.is_(True))
        )
        return result.scalar_one_or_none()

    async def _ensure_unique(
        self,
        email: Optional[str] = None,
        username: Optional[str] = None,
        exclude_id: Optional[int] = None,
        username_message: str = "User with this username already exists",
    ) -> None:
        # Checks span deactivated users too: their rows still hold the values
        if email is not None:
            query = select(User.id).where(User.email == email.lower())
            if exclude_id is not None:
                query = query.where(User.id != exclude_id)
            if (await self.db.execute(query)).first():
                raise ConflictError("User with this email already exists")
        if username is not None:
            query = select(User.id).where(User.username == username)
            if exclude_id is not None:
                query = query.where(User.id != exclude_id)
            if (await self.db.execute(query)).first():
                raise ConflictError(username_message)

    async def _commit_unique(self) -> None:
        """Commit, turning a unique-constraint race into a ConflictError."""
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("User with this email or username already exists")

    # ------------------------------------------------------------------
    # Account creation and passwords
    # ------------------------------------------------------------------

    async def create_user(self, data: Union[UserCreate, dict], role: Optional[UserRole] = None) -> User:
        """
        Validate and persist a new account.

        Args:
            data: A UserCreate (or subclass) instance, or raw camelCase fields
            role: Overrides the role; defaults to data.role if present, else user

        Raises:
            ValidationError: Field validation failed
            ConflictError: Email or username already taken
        """
        if not isinstance(data, UserCreate):
            try:
                data = UserCreate.model_validate(data)
            except pydantic.ValidationError as exc:
                messages = validation_messages(exc.errors())
                raise ValidationError(
                    f"Invalid input data. {'. '.join(messages)}",
                    details={"errors": messages},
                )

        await self._ensure_unique(email=data.email, username=data.username)

        password_hash = await run_in_threadpool(hash_password, data.password, self.hasher)
        now = utcnow()
        user = User(
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email,
            username=data.username,
            role=role or getattr(data, "role", UserRole.USER),
            password_hash=password_hash,
            password_changed_at=now,
            login_attempts=0,
            active=True,
            email_verified=False,
            preferences=default_preferences(),
            profile={},
            refresh_tokens=[],
            created_at=now,
            updated_at=now,
        )
        self.db.add(user)
        await self._commit_unique()

        logger.info("user_created", user_id=user.id, email=user.email, role=user.role.value)
        return user

    async def verify_credentials(self, email: str, password: str) -> User:
        """
        Check an email/password pair against the stored hash.

        A locked account is rejected before the password is compared. Wrong
        passwords are counted; reaching max_login_attempts locks the account
        for lock_time_minutes.

        Raises:
            AuthError: Unknown email or wrong password
            AccountLockedError: The account is currently locked
        """
        user = await self.get_by_email(email)
        if user is None:
            logger.info("login_failed", reason="unknown_email")
            raise AuthError(INVALID_CREDENTIALS)

        now = utcnow()
        if user.is_locked(now):
            logger.warning("login_rejected_locked", user_id=user.id)
            raise AccountLockedError(
                "Account temporarily locked due to too many failed login attempts"
            )

        if not await run_in_threadpool(verify_password, password, user.password_hash):
            await self._record_failed_login(user)
            raise AuthError(INVALID_CREDENTIALS)

        user.login_attempts = 0
        user.lock_until = None
        user.last_login = now
        await self.db.commit()
        return user

    async def _record_failed_login(self, user: User) -> None:
        """Count a failed attempt with atomic UPDATEs; lock on the last one."""
        now = utcnow()
        max_attempts = self.settings.max_login_attempts

        # An expired lock starts a fresh count
        await self.db.execute(
            update(User)
            .where(User.id == user.id, User.lock_until.is_not(None), User.lock_until <= now)
            .values(login_attempts=0, lock_until=None)
            .execution_options(synchronize_session=False)
        )

        reaches_limit = User.login_attempts + 1 >= max_attempts
        lock_until = now + timedelta(minutes=self.settings.lock_time_minutes)
        await self.db.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                login_attempts=case((reaches_limit, 0), else_=User.login_attempts + 1),
                lock_until=case(
                    (reaches_limit, literal(lock_until, UTCDateTime())),
                    else_=User.lock_until,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(user, attribute_names=["login_attempts", "lock_until"])

        if user.is_locked(now):
            logger.warning("account_locked", user_id=user.id, lock_until=user.lock_until.isoformat())
        else:
            logger.info("login_failed", user_id=user.id, attempts=user.login_attempts)

    async def change_password(self, user: User, new_password: str) -> None:
        """
        Re-hash and store a new password.

        Sets password_changed_at, which invalidates every token issued
        before this call, and clears any outstanding reset token.
        """
        user.password_hash = await run_in_threadpool(hash_password, new_password, self.hasher)
        user.password_changed_at = utcnow() - PASSWORD_CHANGE_SKEW
        user.password_reset_token = None
        user.password_reset_expires = None
        await self.db.commit()
        logger.info("password_changed", user_id=user.id)

    async def update_password(
        self, user: User, current_password: str, new_password: str, password_confirm: str
    ) -> None:
        """Change a signed-in user's password after checking the current one."""
        if not await run_in_threadpool(verify_password, current_password, user.password_hash):
            raise AuthError("Your current password is wrong.")
        _check_new_password(new_password, password_confirm)
        await self.change_password(user, new_password)

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    async def add_refresh_token(self, user: User, token: str) -> None:
        """Remember a refresh token's hash, evicting the oldest beyond the cap."""
        user.refresh_tokens.append(RefreshToken(token_hash=hash_token(token), created_at=utcnow()))
        excess = len(user.refresh_tokens) - self.settings.max_refresh_tokens
        if excess > 0:
            del user.refresh_tokens[:excess]
        await self.db.commit()

    def has_refresh_token(self, user: User, token: str) -> bool:
        return any(token_matches(token, entry.token_hash) for entry in user.refresh_tokens)

    async def remove_refresh_token(self, user: User, token: str) -> bool:
        """Forget one refresh token. Returns False if it was not stored."""
        remaining = [e for e in user.refresh_tokens if not token_matches(token, e.token_hash)]
        if len(remaining) == len(user.refresh_tokens):
            return False
        user.refresh_tokens = remaining
        await self.db.commit()
        return True

    # ------------------------------------------------------------------
    # One-time tokens
    # ------------------------------------------------------------------

    async def create_password_reset_token(self, user: User) -> str:
        """Store a fresh reset token hash and return the plaintext."""
        raw_token, digest = generate_one_time_token()
        user.password_reset_token = digest
        user.password_reset_expires = utcnow() + timedelta(
            minutes=self.settings.password_reset_expire_minutes
        )
        await self.db.commit()
        return raw_token

    async def clear_password_reset_token(self, user: User) -> None:
        user.password_reset_token = None
        user.password_reset_expires = None
        await self.db.commit()

    async def consume_reset_token(self, token: str, new_password: str, password_confirm: str) -> User:
        """
        Set a new password using a reset token. The token works once.

        Raises:
            InvalidTokenError: Unknown, used or expired token
            ValidationError: Weak or mismatched new password
        """
        result = await self.db.execute(
            select(User).where(
                User.password_reset_token == hash_token(token),
                User.active.is_(True),
            )
        )
        user = result.scalar_one_or_none()
        if user is None or user.password_reset_expires is None or user.password_reset_expires <= utcnow():
            raise InvalidTokenError(INVALID_ONE_TIME_TOKEN)

        _check_new_password(new_password, password_confirm)
        await self.change_password(user, new_password)
        return user

    async def create_email_verification_token(self, user: User) -> str:
        raw_token, digest = generate_one_time_token()
        user.email_verification_token = digest
        user.email_verification_expires = utcnow() + timedelta(
            hours=self.settings.email_verification_expire_hours
        )
        await self.db.commit()
        return raw_token

    async def consume_email_verification_token(self, token: str) -> User:
        """Mark the owner of a verification token as verified."""
        result = await self.db.execute(
            select(User).where(
                User.email_verification_token == hash_token(token),
                User.active.is_(True),
            )
        )
        user = result.scalar_one_or_none()
        if (
            user is None
            or user.email_verification_expires is None
            or user.email_verification_expires <= utcnow()
        ):
            raise InvalidTokenError(INVALID_ONE_TIME_TOKEN)

        user.email_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        await self.db.commit()
        logger.info("email_verified", user_id=user.id)
        return user

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_changes(user: User, changes: dict, allowed: Iterable[str]) -> List[str]:
        rejected = sorted(set(changes) - set(allowed))
        if rejected:
            raise ValidationError(f"Fields cannot be updated: {', '.join(rejected)}")
        for field, value in changes.items():
            setattr(user, field, value)
        return sorted(changes)

    async def update_profile(self, user: User, changes: dict) -> User:
        """Apply self-service changes; only SELF_MUTABLE_FIELDS are accepted."""
        if changes.get("username") and changes["username"] != user.username:
            await self._ensure_unique(
                username=changes["username"],
                exclude_id=user.id,
                username_message="Username already taken",
            )
        fields = self._apply_changes(user, changes, SELF_MUTABLE_FIELDS)
        await self._commit_unique()
        logger.info("profile_updated", user_id=user.id, fields=fields)
        return user

    async def deactivate(self, user: User) -> None:
        """Self-service account deletion: the row stays, active becomes False."""
        user.active = False
        await self.db.commit()
        logger.info("user_deactivated", user_id=user.id)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        sort: str = "-createdAt",
        role: Optional[UserRole] = None,
        active: Optional[bool] = None,
        email_verified: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[User], int]:
        """
        List users (deactivated included unless filtered) with pagination.

        Returns:
            (users on the requested page, total matching users)
        """
        filters: List[Any] = []
        if role is not None:
            filters.append(User.role == role)
        if active is not None:
            filters.append(User.active.is_(active))
        if email_verified is not None:
            filters.append(User.email_verified.is_(email_verified))
        if search:
            filters.append(
                or_(
                    User.first_name.icontains(search, autoescape=True),
                    User.last_name.icontains(search, autoescape=True),
                    User.email.icontains(search, autoescape=True),
                    User.username.icontains(search, autoescape=True),
                )
            )

        total = (await self.db.execute(select(func.count(User.id)).where(*filters))).scalar_one()

        query = (
            select(User)
            .where(*filters)
            .order_by(*_parse_sort(sort))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        users = list((await self.db.execute(query)).scalars().all())
        return users, total

    async def admin_update(self, user: User, changes: dict) -> User:
        """Apply admin changes; only ADMIN_MUTABLE_FIELDS are accepted."""
        email = changes.get("email")
        username = changes.get("username")
        await self._ensure_unique(
            email=email if email and email != user.email else None,
            username=username if username and username != user.username else None,
            exclude_id=user.id,
        )
        fields = self._apply_changes(user, changes, ADMIN_MUTABLE_FIELDS)
        await self._commit_unique()
        logger.info("user_updated_by_admin", user_id=user.id, fields=fields)
        return user

    async def delete_user(self, user: User) -> None:
        """Physically delete a user and its refresh tokens."""
        user_id = user.id
        await self.db.delete(user)
        await self.db.commit()
        logger.info("user_deleted", user_id=user_id)

    async def stats(self, days: int = 30) -> UserStatsData:
        """Account totals plus per-day signups for the last `days` days."""
        row = (
            await self.db.execute(
                select(
                    func.count(User.id),
                    func.count(case((User.active.is_(True), 1))),
                    func.count(case((User.email_verified.is_(True), 1))),
                    func.count(case((User.role == UserRole.ADMIN, 1))),
                )
            )
        ).one()

        since = utcnow() - timedelta(days=days)
        created = (
            await self.db.execute(select(User.created_at).where(User.created_at >= since))
        ).scalars().all()
        per_day = Counter(ts.date() for ts in created)

        return UserStatsData(
            stats=UserStats(
                total_users=row[0],
                active_users=row[1],
                verified_users=row[2],
                admin_users=row[3],
            ),
            recent_signups=[DailySignups(day=day, count=per_day[day]) for day in sorted(per_day)],
        )
