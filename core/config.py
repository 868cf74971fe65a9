"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TillGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. The four signing secrets are checked here, at startup, so
      a misconfigured deployment never discovers a missing key mid-request.

Security notes:
  Each token family (access, refresh, activation, reset) has its own secret.
  Activation and reset tokens travel in email links; keeping their keys
  separate means a leaked link key cannot forge access or refresh tokens.
  The validator therefore also rejects configurations that reuse a secret.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tillgate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'tillgate.db'}"

_SECRET_FIELDS = (
    "access_token_secret",
    "refresh_token_secret",
    "activation_token_secret",
    "reset_token_secret",
)

_TTL_FIELDS = (
    "access_token_ttl_seconds",
    "refresh_token_ttl_seconds",
    "activation_token_ttl_seconds",
    "reset_token_ttl_seconds",
)

_MIN_SECRET_LEN = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file, provided DEBUG=true (which lets the
    validator generate throwaway secrets).
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
    database_url: str = _DEFAULT_DB_URL
    # Seconds a writer waits for the SQLite write lock. Must exceed the SMTP
    # timeout: registration holds the lock while the activation email goes out.
    database_busy_timeout_seconds: float = 30.0

    # ------------------------------------------------------------------
    # Token signing -- one secret per token family
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    activation_token_secret: str = ""
    reset_token_secret: str = ""

    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_seconds: int = 24 * 60 * 60
    activation_token_ttl_seconds: int = 7 * 24 * 60 * 60
    reset_token_ttl_seconds: int = 5 * 60

    # ------------------------------------------------------------------
    # Outbound email
    # ------------------------------------------------------------------

    # "log" writes links to the log instead of sending; handy for local dev.
    mail_backend: Literal["smtp", "log"] = "smtp"
    mail_from: str = "no-reply@tillgate.local"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_token_config(self) -> "Settings":
        """Enforce the signing-secret policy at startup.

        Dev mode (DEBUG=true): missing secrets are generated with a warning.
            Tokens will not survive a restart -- acceptable for local dev.

        Production mode: every secret must be configured. A missing secret is
            a deployment error and the process refuses to start.

        Both modes: secrets shorter than 32 characters are rejected, the four
            secrets must differ from each other, every TTL must be positive, and the
            database busy timeout must outlast the SMTP timeout.
        """
        for field in _SECRET_FIELDS:
            value = getattr(self, field)
            if not value or not value.strip():
                if self.debug:
                    setattr(self, field, secrets.token_hex(32))
                    logger.warning(
                        "WARNING: Using auto-generated %s. Tokens will not persist across restarts.",
                        field.upper(),
                    )
                else:
                    raise ValueError(
                        f"{field.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            if len(getattr(self, field)) < _MIN_SECRET_LEN:
                raise ValueError(f"{field.upper()} must be at least {_MIN_SECRET_LEN} characters.")

        values = [getattr(self, field) for field in _SECRET_FIELDS]
        if len(set(values)) != len(values):
            raise ValueError("Token secrets must be distinct for each token family.")

        for field in _TTL_FIELDS:
            if getattr(self, field) <= 0:
                raise ValueError(f"{field.upper()} must be greater than 0.")

        if self.database_busy_timeout_seconds <= self.smtp_timeout_seconds:
            raise ValueError("DATABASE_BUSY_TIMEOUT_SECONDS must be greater than SMTP_TIMEOUT_SECONDS.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
