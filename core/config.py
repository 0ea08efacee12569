"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SecureAPI happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, token_ttl_ms -> TOKEN_TTL_MS).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Used for the DEBUG-conditional SECRET_KEY policy.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
    relies on key entropy -- a short key makes tokens forgeable offline.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a
    hard startup failure (ConfigError). The service must not start with a
    degraded signing key.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or catalog/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("secureapi.config")

MIN_SECRET_KEY_LENGTH = 32

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'secureapi.db'}"


class ConfigError(ValueError):
    """Fatal configuration problem. Raised at startup; the service must not run."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields except secret_key have usable defaults. The model_validator
    enforces the signing-key policy at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Session cookie / token
    # ------------------------------------------------------------------

    secure_cookies: bool = True
    token_ttl_ms: int = 86_400_000  # 24 hours

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    # Token bucket in front of /api/v1/auth/*
    rate_limit_capacity: int = 10
    rate_limit_window_seconds: int = 60
    # slowapi per-route limit on product/user write endpoints
    write_rate_limit: str = "60/minute"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3000"]

    @property
    def token_ttl_seconds(self) -> int:
        return self.token_ttl_ms // 1000

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters, and reject a
            token TTL that would issue already-expired tokens.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ConfigError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < MIN_SECRET_KEY_LENGTH:
            raise ConfigError(f"SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters.")
        if self.token_ttl_ms < 1000:
            raise ConfigError("TOKEN_TTL_MS must be at least 1000.")
        if self.rate_limit_capacity < 1 or self.rate_limit_window_seconds < 1:
            raise ConfigError("RATE_LIMIT_CAPACITY and RATE_LIMIT_WINDOW_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Validation failures are re-raised as ConfigError so startup code has a
    single exception type to treat as fatal.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
