from datetime import timedelta

import pytest

from accounts_api.auth.password import verify_password
from accounts_api.core.database import utcnow
from accounts_api.core.errors import (
    AccountLockedError,
    AuthError,
    ConflictError,
    InvalidTokenError,
    ValidationError,
)
from accounts_api.models.user import UserRole


async def test_signup_scenario(open_store):
    async with open_store() as store:
        user = await store.create_user(
            {
                "firstName": "A",
                "lastName": "B",
                "email": "a@b.com",
                "username": "ab1",
                "password": "Secret123!",
                "passwordConfirm": "Secret123!",
            }
        )

        assert user.id is not None
        assert user.active is True
        assert user.email_verified is False
        assert user.role == UserRole.USER
        assert user.password_hash != "Secret123!"
        assert verify_password("Secret123!", user.password_hash)
        assert user.password_changed_at is not None

        signed_in = await store.verify_credentials("a@b.com", "Secret123!")
        assert signed_in.id == user.id
        assert signed_in.last_login is not None


async def test_email_is_stored_lowercase_and_login_is_case_insensitive(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup(email="Ada@Example.COM"))
        assert user.email == "ada@example.com"
        assert (await store.verify_credentials("ADA@example.com", "Secret123!")).id == user.id


async def test_invalid_fields_raise_validation_error(open_store, make_signup):
    async with open_store() as store:
        with pytest.raises(ValidationError, match="Passwords are not the same!"):
            await store.create_user(make_signup(passwordConfirm="Other123!"))
        with pytest.raises(ValidationError):
            await store.create_user(make_signup(password="weakpass", passwordConfirm="weakpass"))
        with pytest.raises(ValidationError):
            await store.create_user(make_signup(username="a b"))
        with pytest.raises(ValidationError):
            await store.create_user(make_signup(email="not-an-email"))


async def test_duplicate_email_and_username(open_store, make_signup):
    async with open_store() as store:
        await store.create_user(make_signup())

        with pytest.raises(ConflictError, match="User with this email already exists"):
            await store.create_user(make_signup(email="ADA@example.com", username="other"))
        with pytest.raises(ConflictError, match="User with this username already exists"):
            await store.create_user(make_signup(email="other@example.com"))


async def test_duplicate_check_includes_deactivated_users(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        await store.deactivate(user)
        with pytest.raises(ConflictError):
            await store.create_user(make_signup())


async def test_unknown_email_and_wrong_password(open_store, make_signup):
    async with open_store() as store:
        await store.create_user(make_signup())

        with pytest.raises(AuthError, match="Incorrect email or password"):
            await store.verify_credentials("nobody@example.com", "Secret123!")
        with pytest.raises(AuthError, match="Incorrect email or password"):
            await store.verify_credentials("ada@example.com", "Wrong123!")


async def test_lockout_after_five_failures(open_store, make_signup, settings):
    async with open_store() as store:
        user = await store.create_user(make_signup())

        for attempt in range(1, settings.max_login_attempts + 1):
            with pytest.raises(AuthError):
                await store.verify_credentials("ada@example.com", "Wrong123!")
            if attempt < settings.max_login_attempts:
                assert user.login_attempts == attempt
                assert user.lock_until is None

        # Counter resets when the lock is set
        assert user.login_attempts == 0
        assert user.is_locked()
        assert user.lock_until - utcnow() > timedelta(minutes=settings.lock_time_minutes - 1)

        with pytest.raises(AccountLockedError):
            await store.verify_credentials("ada@example.com", "Secret123!")


async def test_expired_lock_allows_login_and_clears_state(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        for _ in range(5):
            with pytest.raises(AuthError):
                await store.verify_credentials("ada@example.com", "Wrong123!")

        user.lock_until = utcnow() - timedelta(seconds=1)
        await store.db.commit()

        await store.verify_credentials("ada@example.com", "Secret123!")
        assert user.lock_until is None
        assert user.login_attempts == 0


async def test_expired_lock_restarts_the_count(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        for _ in range(5):
            with pytest.raises(AuthError):
                await store.verify_credentials("ada@example.com", "Wrong123!")

        user.lock_until = utcnow() - timedelta(seconds=1)
        await store.db.commit()

        with pytest.raises(AuthError):
            await store.verify_credentials("ada@example.com", "Wrong123!")
        assert user.login_attempts == 1
        assert user.lock_until is None


async def test_successful_login_resets_attempts(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        for _ in range(3):
            with pytest.raises(AuthError):
                await store.verify_credentials("ada@example.com", "Wrong123!")
        assert user.login_attempts == 3

        await store.verify_credentials("ada@example.com", "Secret123!")
        assert user.login_attempts == 0


async def test_refresh_tokens_are_capped_oldest_first(open_store, make_signup, settings):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        tokens = [f"refresh-token-{i}" for i in range(settings.max_refresh_tokens + 2)]
        for token in tokens:
            await store.add_refresh_token(user, token)

        assert len(user.refresh_tokens) == settings.max_refresh_tokens
        assert not store.has_refresh_token(user, tokens[0])
        assert not store.has_refresh_token(user, tokens[1])
        assert all(store.has_refresh_token(user, token) for token in tokens[2:])
        # Only digests are stored
        assert all(entry.token_hash not in tokens for entry in user.refresh_tokens)


async def test_remove_refresh_token(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        await store.add_refresh_token(user, "first")
        await store.add_refresh_token(user, "second")

        assert await store.remove_refresh_token(user, "first")
        assert not await store.remove_refresh_token(user, "first")
        assert not store.has_refresh_token(user, "first")
        assert store.has_refresh_token(user, "second")


async def test_change_password_sets_changed_at(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        old_hash = user.password_hash

        await store.change_password(user, "Another123!")

        assert user.password_hash != old_hash
        assert user.password_changed_at < utcnow()
        await store.verify_credentials("ada@example.com", "Another123!")


async def test_update_password_requires_current_password(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())

        with pytest.raises(AuthError, match="Your current password is wrong."):
            await store.update_password(user, "Wrong123!", "Another123!", "Another123!")
        with pytest.raises(ValidationError, match="Passwords are not the same!"):
            await store.update_password(user, "Secret123!", "Another123!", "Different123!")

        await store.update_password(user, "Secret123!", "Another123!", "Another123!")
        assert verify_password("Another123!", user.password_hash)


async def test_reset_token_is_single_use(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        raw_token = await store.create_password_reset_token(user)

        assert user.password_reset_token != raw_token
        assert user.password_reset_expires > utcnow() + timedelta(minutes=9)

        reset_user = await store.consume_reset_token(raw_token, "Another123!", "Another123!")
        assert reset_user.id == user.id
        assert user.password_reset_token is None
        assert user.password_reset_expires is None

        with pytest.raises(InvalidTokenError, match="Token is invalid or has expired"):
            await store.consume_reset_token(raw_token, "Third123!", "Third123!")
        await store.verify_credentials("ada@example.com", "Another123!")


async def test_expired_reset_token(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        raw_token = await store.create_password_reset_token(user)
        user.password_reset_expires = utcnow() - timedelta(seconds=1)
        await store.db.commit()

        with pytest.raises(InvalidTokenError):
            await store.consume_reset_token(raw_token, "Another123!", "Another123!")


async def test_new_reset_token_replaces_the_old_one(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        first = await store.create_password_reset_token(user)
        second = await store.create_password_reset_token(user)

        with pytest.raises(InvalidTokenError):
            await store.consume_reset_token(first, "Another123!", "Another123!")
        await store.consume_reset_token(second, "Another123!", "Another123!")


async def test_email_verification(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        raw_token = await store.create_email_verification_token(user)
        assert user.email_verification_expires > utcnow() + timedelta(hours=23)

        await store.consume_email_verification_token(raw_token)
        assert user.email_verified is True
        assert user.email_verification_token is None

        with pytest.raises(InvalidTokenError):
            await store.consume_email_verification_token(raw_token)


async def test_expired_email_verification_token(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        raw_token = await store.create_email_verification_token(user)
        user.email_verification_expires = utcnow() - timedelta(seconds=1)
        await store.db.commit()

        with pytest.raises(InvalidTokenError):
            await store.consume_email_verification_token(raw_token)
        assert user.email_verified is False


async def test_update_profile_only_accepts_declared_fields(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())

        await store.update_profile(user, {"first_name": "Augusta", "avatar": "https://example.com/a.png"})
        assert user.first_name == "Augusta"
        assert user.full_name == "Augusta Lovelace"

        with pytest.raises(ValidationError, match="role"):
            await store.update_profile(user, {"role": UserRole.ADMIN})
        assert user.role == UserRole.USER


async def test_update_profile_username_must_be_unique(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        await store.create_user(make_signup(email="grace@example.com", username="grace"))

        with pytest.raises(ConflictError, match="Username already taken"):
            await store.update_profile(user, {"username": "grace"})


async def test_deactivated_user_is_hidden_from_default_reads(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        await store.deactivate(user)

        assert await store.get_by_email("ada@example.com") is None
        assert await store.get_active_user(user.id) is None
        assert (await store.get_user(user.id)).active is False
        with pytest.raises(AuthError):
            await store.verify_credentials("ada@example.com", "Secret123!")


async def test_admin_update_and_delete(open_store, make_signup):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        other = await store.create_user(make_signup(email="grace@example.com", username="grace"))

        await store.admin_update(user, {"role": UserRole.MODERATOR, "email_verified": True})
        assert user.role == UserRole.MODERATOR
        assert user.email_verified is True

        with pytest.raises(ConflictError):
            await store.admin_update(user, {"email": "grace@example.com"})
        with pytest.raises(ValidationError):
            await store.admin_update(user, {"password_hash": "x"})

        await store.delete_user(other)
        assert await store.get_user(other.id) is None


async def test_list_users_filters_and_paginates(open_store, make_signup):
    async with open_store() as store:
        for i in range(3):
            await store.create_user(make_signup(email=f"user{i}@example.com", username=f"user{i}"))
        moderator = await store.create_user(
            make_signup(email="mod@example.com", username="moderator"), role=UserRole.MODERATOR
        )
        inactive = await store.create_user(make_signup(email="gone@example.com", username="gone"))
        await store.deactivate(inactive)

        users, total = await store.list_users(page=1, limit=2, sort="username")
        assert total == 5
        assert [u.username for u in users] == ["gone", "moderator"]

        users, total = await store.list_users(page=3, limit=2, sort="username")
        assert [u.username for u in users] == ["user2"]

        users, total = await store.list_users(role=UserRole.MODERATOR)
        assert [u.id for u in users] == [moderator.id]

        users, total = await store.list_users(active=False)
        assert [u.id for u in users] == [inactive.id]

        users, total = await store.list_users(search="USER1")
        assert [u.username for u in users] == ["user1"]

        # LIKE wildcards in the search term are matched literally
        users, total = await store.list_users(search="%")
        assert total == 0

        with pytest.raises(ValidationError):
            await store.list_users(sort="password_hash")


async def test_stats(open_store, make_signup):
    async with open_store() as store:
        await store.create_user(make_signup())
        await store.create_user(make_signup(email="root@example.com", username="root"), role=UserRole.ADMIN)
        inactive = await store.create_user(make_signup(email="gone@example.com", username="gone"))
        await store.deactivate(inactive)

        data = await store.stats()
        assert data.stats.total_users == 3
        assert data.stats.active_users == 2
        assert data.stats.verified_users == 0
        assert data.stats.admin_users == 1
        assert sum(day.count for day in data.recent_signups) == 3


async def test_hashes_use_the_configured_argon2_costs(open_store, make_signup, settings):
    async with open_store() as store:
        user = await store.create_user(make_signup())
        costs = f"m={settings.argon2_memory_cost},t={settings.argon2_time_cost},p={settings.argon2_parallelism}"
        assert f"${costs}$" in user.password_hash

        await store.change_password(user, "Another123!")
        assert "$m=1024,t=1,p=1$" in user.password_hash
