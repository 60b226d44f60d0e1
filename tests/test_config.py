"""Unit tests for Hookline configuration."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from hookline.config import DEFAULT_USER_AGENT, Settings


class TestSettings:
    """Tests for Settings model."""

    def test_default_settings(self):
        """Default settings should be reasonable."""
        # Use _env_file=None to prevent reading from .env file
        settings = Settings(_env_file=None)
        assert settings.database_url == "sqlite+aiosqlite:///./hookline.db"
        assert settings.is_sqlite
        assert settings.default_max_retries == 3
        assert settings.default_timeout_seconds == 30.0
        assert settings.max_backoff_seconds == 30.0
        assert settings.response_max_chars == 1000
        assert settings.max_concurrent_deliveries == 10
        assert settings.retry_sweep_interval_seconds == 60.0
        assert settings.user_agent == DEFAULT_USER_AGENT
        assert settings.log_level == "INFO"

    def test_user_agent_format(self):
        """The default User-Agent should name the product and version."""
        assert DEFAULT_USER_AGENT.startswith("Hookline-Webhook/")

    def test_log_formats(self):
        """Only valid log formats should be accepted."""
        assert Settings(log_format="text").log_format == "text"
        with pytest.raises(ValidationError):
            Settings(log_format="xml")

    def test_postgres_url(self):
        """Async PostgreSQL URLs should be accepted and not treated as SQLite."""
        settings = Settings(database_url="postgresql+asyncpg://user:pw@db/hookline")
        assert not settings.is_sqlite

    def test_sqlite_requires_aiosqlite(self):
        """Synchronous SQLite URLs should be rejected."""
        with pytest.raises(ValidationError, match="aiosqlite"):
            Settings(database_url="sqlite:///./hookline.db")

    def test_in_memory_sqlite_rejected(self):
        """In-memory SQLite cannot be shared between connections."""
        with pytest.raises(ValidationError, match="In-memory"):
            Settings(database_url="sqlite+aiosqlite:///:memory:")

    def test_bounds(self):
        """Out-of-range values should be rejected."""
        with pytest.raises(ValidationError):
            Settings(max_concurrent_deliveries=0)
        with pytest.raises(ValidationError):
            Settings(retry_sweep_interval_seconds=0)
        with pytest.raises(ValidationError):
            Settings(default_max_retries=0)

    def test_env_prefix(self):
        """Settings should use HOOKLINE_ prefix for environment variables."""
        with patch.dict(os.environ, {"HOOKLINE_LOG_LEVEL": "DEBUG"}):
            settings = Settings()
            assert settings.log_level == "DEBUG"

    def test_env_overrides_delivery_defaults(self):
        """Delivery defaults should be overridable from the environment."""
        env = {
            "HOOKLINE_DEFAULT_MAX_RETRIES": "5",
            "HOOKLINE_CLAIM_GRACE_SECONDS": "10",
        }
        with patch.dict(os.environ, env):
            settings = Settings()
            assert settings.default_max_retries == 5
            assert settings.claim_grace_seconds == 10.0

    def test_env_defaults_to_development(self):
        """Environment should default to development."""
        assert Settings(_env_file=None).env == "development"
