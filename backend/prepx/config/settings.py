"""
Runtime configuration loaded from environment variables.

Secrets are never logged; only their presence is.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from prepx.config.plans import FREE_TIER_DAILY_LIMIT

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./prepx.db"


@dataclass(frozen=True)
class AppConfig:
    """Service configuration from environment."""
    database_url: str = DEFAULT_DATABASE_URL
    auth_jwt_secret: str = ""
    auth_jwt_audience: str = "authenticated"
    auth_api_url: str = ""
    auth_api_key: str = ""
    billing_webhook_secret: str = ""
    free_tier_daily_limit: int = FREE_TIER_DAILY_LIMIT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """Load configuration from environment variables."""
        env = os.environ if environ is None else environ

        raw_limit = env.get("FREE_TIER_DAILY_LIMIT", "")
        try:
            free_limit = int(raw_limit) if raw_limit else FREE_TIER_DAILY_LIMIT
        except ValueError:
            logger.warning(
                "Invalid FREE_TIER_DAILY_LIMIT, using default",
                extra={"value": raw_limit, "default": FREE_TIER_DAILY_LIMIT},
            )
            free_limit = FREE_TIER_DAILY_LIMIT
        if free_limit < 0:
            raise ValueError("FREE_TIER_DAILY_LIMIT must be >= 0")

        config = cls(
            database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
            auth_jwt_secret=env.get("AUTH_JWT_SECRET", ""),
            auth_jwt_audience=env.get("AUTH_JWT_AUDIENCE") or "authenticated",
            auth_api_url=(env.get("AUTH_API_URL") or "").rstrip("/"),
            auth_api_key=env.get("AUTH_API_KEY", ""),
            billing_webhook_secret=env.get("BILLING_WEBHOOK_SECRET", ""),
            free_tier_daily_limit=free_limit,
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )
        config.log_status()
        return config

    @property
    def webhook_signing_enabled(self) -> bool:
        return bool(self.billing_webhook_secret)

    def log_status(self) -> None:
        """Log configuration status on startup (NO secrets)."""
        logger.info("Configuration status", extra={
            "database_configured": self.database_url != DEFAULT_DATABASE_URL,
            "auth_jwt_configured": bool(self.auth_jwt_secret),
            "auth_api_configured": bool(self.auth_api_url),
            "webhook_signing_enabled": self.webhook_signing_enabled,
            "free_tier_daily_limit": self.free_tier_daily_limit,
        })
        if not self.webhook_signing_enabled:
            logger.warning(
                "BILLING_WEBHOOK_SECRET not set; billing webhooks are accepted without "
                "signature verification (development mode)"
            )
        if not self.auth_jwt_secret and not self.auth_api_url:
            logger.warning("No auth verifier configured; all bearer tokens will be rejected")
