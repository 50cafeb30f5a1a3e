"""Configuration module for the billing and entitlements service."""

from prepx.config.settings import AppConfig
from prepx.config.plans import (
    FREE_TIER_DAILY_LIMIT,
    GATED_FEATURES,
    PRO_FEATURES,
    PRODUCT_TO_PLAN,
    plan_slug_for_product,
)

__all__ = [
    "AppConfig",
    "FREE_TIER_DAILY_LIMIT",
    "GATED_FEATURES",
    "PRO_FEATURES",
    "PRODUCT_TO_PLAN",
    "plan_slug_for_product",
]
