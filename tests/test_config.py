import pytest

from accounts_api.core.config import Settings


def test_from_env_reads_argon2_costs(monkeypatch):
    monkeypatch.setenv("ARGON2_TIME_COST", "2")
    monkeypatch.setenv("ARGON2_MEMORY_COST", "2048")
    monkeypatch.setenv("ARGON2_PARALLELISM", "1")
    monkeypatch.setenv("DEBUG", "true")

    settings = Settings.from_env()

    assert settings.argon2_time_cost == 2
    assert settings.argon2_memory_cost == 2048
    assert settings.argon2_parallelism == 1
    assert settings.debug is True


def test_defaults():
    settings = Settings()
    assert (settings.argon2_time_cost, settings.argon2_memory_cost, settings.argon2_parallelism) == (3, 65536, 4)
    assert settings.access_cookie_max_age == 86400
    assert settings.refresh_cookie_max_age == 2592000
    assert not settings.is_production


def test_production_requires_real_secrets():
    with pytest.raises(ValueError, match="JWT_SECRET must be set in production"):
        Settings(app_env="production")

    settings = Settings(app_env="production", jwt_secret="a" * 32, jwt_refresh_secret="b" * 32)
    assert settings.is_production
