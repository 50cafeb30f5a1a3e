"""
Entitlement gate: allow/deny decisions for gated features.

Fail-closed: any store error or missing decision becomes a deny with
reason "check_failed". The gate never turns a deny into a partial allow.

Usage accounting is a separate call after the allow decision, so two
concurrent requests can both be allowed before either increments. Usage
may overshoot the limit by up to (concurrency - 1).
"""

import logging
from typing import Optional

from prepx.entitlements.models import (
    EntitlementCheckResult,
    EntitlementDecision,
    UsageSummary,
    check_failed_result,
    unauthorized_result,
)
from prepx.entitlements.store import EntitlementStore
from prepx.monitoring.entitlement_alerts import emit_check_failure, record_deny_and_alert
from prepx.platform.errors import ValidationError

logger = logging.getLogger(__name__)


class EntitlementGate:
    """Decides feature access for an explicitly passed user id."""

    def __init__(self, store: EntitlementStore):
        self.store = store

    def check(
        self,
        user_id: Optional[str],
        feature_slug: Optional[str],
        increment_usage: bool = False,
    ) -> EntitlementCheckResult:
        """
        Check whether ``user_id`` may use ``feature_slug``.

        Args:
            user_id: Resolved principal id; blank means unauthenticated
            feature_slug: Gated capability, e.g. "notes_generation"
            increment_usage: Count one use when the check allows

        Returns:
            EntitlementCheckResult (never raises for store failures)

        Raises:
            ValidationError: feature_slug is blank
        """
        normalized_user = str(user_id or "").strip()
        if not normalized_user:
            return unauthorized_result()

        slug = str(feature_slug or "").strip()
        if not slug:
            raise ValidationError("feature_slug is required", {"field": "feature_slug"})

        try:
            decision = self.store.lookup(normalized_user, slug)
        except Exception as e:
            logger.exception(
                "Entitlement lookup failed",
                extra={"user_id": normalized_user, "feature_slug": slug},
            )
            emit_check_failure(normalized_user, slug, str(e))
            return check_failed_result()

        if decision is None:
            emit_check_failure(normalized_user, slug, "no decision returned")
            return check_failed_result()

        if not decision.allowed:
            record_deny_and_alert(normalized_user, slug, decision.reason)
            logger.info(
                "Entitlement denied",
                extra={"user_id": normalized_user, "feature_slug": slug, "reason": decision.reason},
            )
            return _shape(decision, decision.usage_count)

        usage_count = decision.usage_count
        if increment_usage:
            usage_count = self._increment(normalized_user, slug, usage_count)

        return _shape(decision, usage_count)

    def _increment(self, user_id: str, feature_slug: str, usage_count: Optional[int]) -> Optional[int]:
        try:
            new_count = self.store.increment(user_id, feature_slug)
        except Exception:
            # Allow stands; the use simply goes uncounted
            logger.exception(
                "Usage increment failed",
                extra={"user_id": user_id, "feature_slug": feature_slug},
            )
            return usage_count

        if new_count is not None:
            return new_count
        if usage_count is not None:
            return usage_count + 1
        return None


def _shape(decision: EntitlementDecision, usage_count: Optional[int]) -> EntitlementCheckResult:
    usage = None
    if decision.limit_value is not None:
        usage = UsageSummary.from_counts(usage_count or 0, decision.limit_value)
    return EntitlementCheckResult(
        allowed=decision.allowed,
        reason=decision.reason,
        show_paywall=decision.show_paywall,
        upgrade_cta=decision.upgrade_cta,
        usage=usage,
        tier=decision.tier,
    )
