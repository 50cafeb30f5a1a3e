"""
Plan and feature catalogue.

Product ids come from the billing provider; plan slugs match rows in the
``plans`` table. Feature slugs are the gated capabilities the entitlement
gate knows how to decide on.
"""

from typing import Dict, Optional, Tuple

# Features unlocked wholesale by an active or trial subscription
PRO_FEATURES: Tuple[str, ...] = (
    "notes_generation",
    "video_generation",
    "doubt_video",
    "detailed_solutions",
    "unlimited_search",
    "download_pdf",
)

# Everything the gate can answer for. Slugs outside this set fail closed.
GATED_FEATURES: frozenset = frozenset(PRO_FEATURES) | frozenset({
    "doubt_videos",
    "answer_evaluation",
    "mock_tests",
})

# Free tier: 3 uses per feature per day
FREE_TIER_DAILY_LIMIT = 3

PRODUCT_TO_PLAN: Dict[str, str] = {
    "prepx_monthly": "monthly",
    "prepx_quarterly": "quarterly",
    "prepx_half_yearly": "half-yearly",
    "prepx_annual": "annual",
    "pro_monthly": "monthly",
    "pro_quarterly": "quarterly",
    "pro_half_yearly": "half-yearly",
    "pro_annual": "annual",
}

UPGRADE_CTA_PRO = "Upgrade to Pro for unlimited access"
UPGRADE_CTA_LOCKED = "Upgrade to Pro to unlock this feature"
UPGRADE_CTA_SIGN_IN = "Please sign in to continue"
UPGRADE_CTA_RETRY = "Please try again"


def plan_slug_for_product(product_id: Optional[str]) -> Optional[str]:
    """Map a billing product id to an internal plan slug (None when unmapped)."""
    if not product_id:
        return None
    return PRODUCT_TO_PLAN.get(product_id)


def limit_reached_cta(limit_value: int, limit_type: str) -> str:
    window = "today" if limit_type == "daily" else "this month"
    return f"You've used all {limit_value} free uses {window}. {UPGRADE_CTA_PRO}."
