import asyncio
import inspect
import os
from contextlib import asynccontextmanager

# Quiet test environment before the package is imported
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from accounts_api.auth.jwt import TokenIssuer  # noqa: E402
from accounts_api.auth.session import SessionService  # noqa: E402
from accounts_api.auth.store import CredentialStore  # noqa: E402
from accounts_api.core.config import Settings  # noqa: E402
from accounts_api.core.database import Database  # noqa: E402
from accounts_api.main import create_app  # noqa: E402
from accounts_api.models.user import UserRole  # noqa: E402

STRONG_PASSWORD = "Secret123!"


def signup_payload(**overrides) -> dict:
    """camelCase signup body for a valid new user."""
    payload = {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@example.com",
        "username": "ada",
        "password": STRONG_PASSWORD,
        "passwordConfirm": STRONG_PASSWORD,
    }
    payload.update(overrides)
    return payload


class RecordingEmailSender:
    """Stands in for EmailSender and keeps the tokens it was asked to send."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def _record(self, kind, user, token=None):
        self.sent.append({"kind": kind, "email": user.email, "token": token})
        return not self.fail

    async def send_welcome_email(self, user, verification_token):
        return self._record("welcome", user, verification_token)

    async def send_password_reset_email(self, user, reset_token):
        return self._record("reset", user, reset_token)

    async def send_password_changed_email(self, user):
        return self._record("password_changed", user)

    def last_token(self, kind: str, email: str):
        for message in reversed(self.sent):
            if message["kind"] == kind and message["email"] == email:
                return message["token"]
        raise AssertionError(f"no {kind} email sent to {email}")


@pytest.fixture
def make_signup():
    return signup_payload


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        app_env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'accounts-test.db'}",
        jwt_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
        log_level="WARNING",
        log_json=False,
        argon2_time_cost=1,
        argon2_memory_cost=1024,
        argon2_parallelism=1,
    )


@pytest.fixture
def issuer(settings) -> TokenIssuer:
    return TokenIssuer(settings)


@pytest.fixture
def open_store(settings):
    """Async context manager yielding a CredentialStore on a fresh database."""

    @asynccontextmanager
    async def _open():
        database = Database(settings.database_url)
        await database.create_all()
        try:
            async with database.session() as session:
                yield CredentialStore(session, settings)
        finally:
            await database.close()

    return _open


@pytest.fixture
def open_sessions(open_store, issuer):
    """Async context manager yielding (store, SessionService)."""

    @asynccontextmanager
    async def _open():
        async with open_store() as store:
            yield store, SessionService(store, issuer)

    return _open


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def app(settings, email_sender):
    application = create_app(settings)
    application.state.email_sender = email_sender
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_credentials(settings) -> dict:
    """Create an admin directly in the database before the app starts."""

    async def _create():
        database = Database(settings.database_url)
        await database.create_all()
        try:
            async with database.session() as session:
                store = CredentialStore(session, settings)
                await store.create_user(
                    signup_payload(
                        firstName="Root",
                        lastName="Admin",
                        email="admin@example.com",
                        username="admin",
                    ),
                    role=UserRole.ADMIN,
                )
        finally:
            await database.close()

    asyncio.run(_create())
    return {"email": "admin@example.com", "password": STRONG_PASSWORD}


@pytest.fixture
def admin_client(admin_credentials, app):
    with TestClient(app) as test_client:
        response = test_client.post("/api/v1/auth/login", json=admin_credentials)
        assert response.status_code == 200, response.text
        test_client.headers["Authorization"] = f"Bearer {response.json()['token']}"
        yield test_client


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")

