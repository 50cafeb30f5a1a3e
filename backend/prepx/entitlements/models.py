"""
Value types exchanged between the entitlement store, the gate and the API.

EntitlementDecision is what the store returns; EntitlementCheckResult is the
public contract returned to callers.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from prepx.config.plans import UPGRADE_CTA_RETRY, UPGRADE_CTA_SIGN_IN

# Allow reasons
REASON_SUBSCRIPTION_ACTIVE = "subscription_active"
REASON_TRIAL_ACTIVE = "trial_active"
REASON_UNLIMITED = "unlimited"
REASON_FREE_TIER_WITHIN_LIMIT = "free_tier_within_limit"
REASON_DAILY_LIMIT_RESET = "daily_limit_reset"
REASON_MONTHLY_LIMIT_RESET = "monthly_limit_reset"
REASON_WITHIN_LIMIT = "within_limit"

# Business deny reasons
REASON_LIMIT_REACHED = "limit_reached"
REASON_FEATURE_NOT_IN_TIER = "feature_not_in_tier"

# Non-business outcomes
REASON_UNAUTHORIZED = "unauthorized"
REASON_CHECK_FAILED = "check_failed"

TIER_PRO = "pro"
TIER_TRIAL = "trial"
TIER_FREE = "free"
TIER_UNKNOWN = "unknown"


@dataclass(frozen=True)
class EntitlementDecision:
    """Store-level answer for one (user, feature) lookup."""
    allowed: bool
    reason: str
    tier: str
    show_paywall: bool
    upgrade_cta: str
    limit_type: Optional[str] = None
    limit_value: Optional[int] = None
    usage_count: Optional[int] = None


@dataclass(frozen=True)
class UsageSummary:
    current: int
    limit: int
    remaining: int

    @classmethod
    def from_counts(cls, current: int, limit: int) -> "UsageSummary":
        return cls(current=current, limit=limit, remaining=max(0, limit - current))

    def to_dict(self) -> Dict[str, int]:
        return {"current": self.current, "limit": self.limit, "remaining": self.remaining}


@dataclass(frozen=True)
class EntitlementCheckResult:
    """Public entitlement contract."""
    allowed: bool
    reason: str
    show_paywall: bool
    upgrade_cta: str
    usage: Optional[UsageSummary]
    tier: str

    @property
    def is_check_failure(self) -> bool:
        return self.reason == REASON_CHECK_FAILED

    @property
    def is_unauthorized(self) -> bool:
        return self.reason == REASON_UNAUTHORIZED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "show_paywall": self.show_paywall,
            "upgrade_cta": self.upgrade_cta,
            "usage": self.usage.to_dict() if self.usage is not None else None,
            "tier": self.tier,
        }


def unauthorized_result() -> EntitlementCheckResult:
    return EntitlementCheckResult(
        allowed=False,
        reason=REASON_UNAUTHORIZED,
        show_paywall=True,
        upgrade_cta=UPGRADE_CTA_SIGN_IN,
        usage=None,
        tier=TIER_UNKNOWN,
    )


def check_failed_result() -> EntitlementCheckResult:
    return EntitlementCheckResult(
        allowed=False,
        reason=REASON_CHECK_FAILED,
        show_paywall=True,
        upgrade_cta=UPGRADE_CTA_RETRY,
        usage=None,
        tier=TIER_UNKNOWN,
    )
