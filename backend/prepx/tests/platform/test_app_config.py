"""Tests for environment configuration."""

import pytest

from prepx.config.settings import DEFAULT_DATABASE_URL, AppConfig


class TestAppConfig:

    def test_defaults(self):
        config = AppConfig.from_env({})

        assert config.database_url == DEFAULT_DATABASE_URL
        assert config.free_tier_daily_limit == 3
        assert config.auth_jwt_audience == "authenticated"
        assert config.log_level == "INFO"
        assert config.webhook_signing_enabled is False

    def test_reads_environment(self):
        config = AppConfig.from_env({
            "DATABASE_URL": "postgresql://prepx@db/prepx",
            "AUTH_JWT_SECRET": "s3cret",
            "AUTH_API_URL": "https://auth.example.com/",
            "BILLING_WEBHOOK_SECRET": "whsec",
            "FREE_TIER_DAILY_LIMIT": "5",
            "LOG_LEVEL": "debug",
        })

        assert config.database_url == "postgresql://prepx@db/prepx"
        assert config.auth_api_url == "https://auth.example.com"
        assert config.free_tier_daily_limit == 5
        assert config.log_level == "DEBUG"
        assert config.webhook_signing_enabled is True

    def test_invalid_limit_uses_default(self):
        assert AppConfig.from_env({"FREE_TIER_DAILY_LIMIT": "many"}).free_tier_daily_limit == 3

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            AppConfig.from_env({"FREE_TIER_DAILY_LIMIT": "-1"})

    def test_missing_webhook_secret_warns(self, caplog):
        with caplog.at_level("WARNING"):
            AppConfig.from_env({})

        assert "BILLING_WEBHOOK_SECRET not set" in caplog.text

    def test_secrets_never_logged(self, caplog):
        with caplog.at_level("INFO"):
            AppConfig.from_env({"AUTH_JWT_SECRET": "super-secret-value", "BILLING_WEBHOOK_SECRET": "whsec_live"})

        assert "super-secret-value" not in caplog.text
        assert "whsec_live" not in caplog.text
