"""
Application settings.

Values come from environment variables (a local .env file is loaded first).
The Settings object is built once per process and handed to the components
that need it; tests build their own instances directly.
"""

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, model_validator

load_dotenv()

DEV_JWT_SECRET = "dev-access-secret-change-me"
DEV_JWT_REFRESH_SECRET = "dev-refresh-secret-change-me"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Validated runtime configuration."""

    app_env: str = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"

    database_url: str = "sqlite+aiosqlite:///./accounts.db"
    sql_echo: bool = False

    # JWT: access and refresh tokens use distinct secrets
    jwt_secret: SecretStr = SecretStr(DEV_JWT_SECRET)
    jwt_refresh_secret: SecretStr = SecretStr(DEV_JWT_REFRESH_SECRET)
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=7 * 24 * 60, ge=1)
    refresh_token_expire_days: int = Field(default=30, ge=1)
    token_issuer: str = "accounts-api"
    token_audience: str = "accounts-frontend"

    # Cookies (seconds)
    access_cookie_max_age: int = 24 * 60 * 60
    refresh_cookie_max_age: int = 30 * 24 * 60 * 60

    # Lockout and one-time tokens
    max_login_attempts: int = Field(default=5, ge=1)
    lock_time_minutes: int = Field(default=120, ge=1)
    max_refresh_tokens: int = Field(default=5, ge=1)
    password_reset_expire_minutes: int = Field(default=10, ge=1)
    email_verification_expire_hours: int = Field(default=24, ge=1)

    # Argon2id cost parameters for new hashes
    argon2_time_cost: int = Field(default=3, ge=1)
    argon2_memory_cost: int = Field(default=65536, ge=8)  # KiB
    argon2_parallelism: int = Field(default=4, ge=1)

    frontend_url: str = "http://localhost:3000"
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Outgoing email; left unset in development so messages are only logged
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[SecretStr] = None
    smtp_use_tls: bool = True
    from_email: Optional[str] = None

    log_level: str = "INFO"
    log_json: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in {"prod", "production"}

    @model_validator(mode="after")
    def require_real_secrets_in_production(self) -> "Settings":
        if self.is_production:
            if self.jwt_secret.get_secret_value() == DEV_JWT_SECRET:
                raise ValueError("JWT_SECRET must be set in production")
            if self.jwt_refresh_secret.get_secret_value() == DEV_JWT_REFRESH_SECRET:
                raise ValueError("JWT_REFRESH_SECRET must be set in production")
        if self.jwt_secret.get_secret_value() == self.jwt_refresh_secret.get_secret_value():
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must differ")
        return self

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        values = {
            "app_env": os.getenv("APP_ENV", "development"),
            "debug": _env_bool("DEBUG"),
            "database_url": os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./accounts.db"),
            "sql_echo": _env_bool("SQL_DEBUG"),
            "jwt_algorithm": os.getenv("JWT_ALGORITHM", "HS256"),
            "access_token_expire_minutes": int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080")),
            "refresh_token_expire_days": int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "30")),
            "token_issuer": os.getenv("TOKEN_ISSUER", "accounts-api"),
            "token_audience": os.getenv("TOKEN_AUDIENCE", "accounts-frontend"),
            "access_cookie_max_age": int(os.getenv("ACCESS_COOKIE_MAX_AGE", str(24 * 60 * 60))),
            "refresh_cookie_max_age": int(os.getenv("REFRESH_COOKIE_MAX_AGE", str(30 * 24 * 60 * 60))),
            "max_login_attempts": int(os.getenv("MAX_LOGIN_ATTEMPTS", "5")),
            "lock_time_minutes": int(os.getenv("LOCK_TIME_MINUTES", "120")),
            "max_refresh_tokens": int(os.getenv("MAX_REFRESH_TOKENS", "5")),
            "password_reset_expire_minutes": int(os.getenv("PASSWORD_RESET_EXPIRE_MINUTES", "10")),
            "email_verification_expire_hours": int(os.getenv("EMAIL_VERIFICATION_EXPIRE_HOURS", "24")),
            "argon2_time_cost": int(os.getenv("ARGON2_TIME_COST", "3")),
            "argon2_memory_cost": int(os.getenv("ARGON2_MEMORY_COST", "65536")),
            "argon2_parallelism": int(os.getenv("ARGON2_PARALLELISM", "4")),
            "frontend_url": os.getenv("FRONTEND_URL", "http://localhost:3000"),
            "cors_origins": [
                origin.strip()
                for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
                if origin.strip()
            ],
            "smtp_host": os.getenv("SMTP_HOST") or None,
            "smtp_port": int(os.getenv("SMTP_PORT", "587")),
            "smtp_user": os.getenv("SMTP_USER") or None,
            "smtp_use_tls": _env_bool("SMTP_USE_TLS", "true"),
            "from_email": os.getenv("FROM_EMAIL") or None,
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "log_json": _env_bool("LOG_JSON", "true"),
        }
        if os.getenv("JWT_SECRET"):
            values["jwt_secret"] = os.environ["JWT_SECRET"]
        if os.getenv("JWT_REFRESH_SECRET"):
            values["jwt_refresh_secret"] = os.environ["JWT_REFRESH_SECRET"]
        if os.getenv("SMTP_PASSWORD"):
            values["smtp_password"] = os.environ["SMTP_PASSWORD"]
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    """Return the cached process-wide settings."""
    return Settings.from_env()
