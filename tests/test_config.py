"""
tests/test_config.py -- Settings validation for token secrets and TTLs.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

SECRETS = {
    "access_token_secret": "A" * 32,
    "refresh_token_secret": "R" * 32,
    "activation_token_secret": "V" * 32,
    "reset_token_secret": "P" * 32,
}


def _settings(**overrides) -> Settings:
    values = {"debug": False, **SECRETS, **overrides}
    return Settings(_env_file=None, **values)


class TestSecretPolicy:
    def test_valid_production_config(self):
        s = _settings()
        assert s.access_token_secret == "A" * 32

    def test_missing_secret_refused_in_production(self):
        with pytest.raises(ValidationError, match="RESET_TOKEN_SECRET is required"):
            _settings(reset_token_secret="")

    def test_debug_generates_distinct_secrets(self):
        s = Settings(
            _env_file=None,
            debug=True,
            access_token_secret="",
            refresh_token_secret="",
            activation_token_secret="",
            reset_token_secret="",
        )
        values = {s.access_token_secret, s.refresh_token_secret, s.activation_token_secret, s.reset_token_secret}
        assert len(values) == 4
        assert all(len(v) >= 32 for v in values)

    def test_short_secret_rejected(self):
        with pytest.raises(ValidationError, match="at least 32 characters"):
            _settings(access_token_secret="short")

    def test_reused_secret_rejected(self):
        with pytest.raises(ValidationError, match="distinct"):
            _settings(refresh_token_secret=SECRETS["access_token_secret"])


class TestTtls:
    def test_defaults(self):
        s = _settings()
        assert s.access_token_ttl_seconds == 900
        assert s.refresh_token_ttl_seconds == 86400
        assert s.activation_token_ttl_seconds == 604800
        assert s.reset_token_ttl_seconds == 300

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_non_positive_ttl_rejected(self, ttl):
        with pytest.raises(ValidationError, match="greater than 0"):
            _settings(reset_token_ttl_seconds=ttl)


class TestDatabaseBusyTimeout:
    def test_default_outlasts_smtp_timeout(self):
        s = _settings()
        assert s.database_busy_timeout_seconds > s.smtp_timeout_seconds

    def test_busy_timeout_not_above_smtp_timeout_rejected(self):
        with pytest.raises(ValidationError, match="DATABASE_BUSY_TIMEOUT_SECONDS"):
            _settings(database_busy_timeout_seconds=5.0, smtp_timeout_seconds=10.0)
