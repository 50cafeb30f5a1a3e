"""
Entitlement store: the single authoritative lookup behind the gate.

EntitlementStore is the interface; SqlEntitlementStore implements the
decision function (tier lookup, limit comparison, reset window) against the
subscriptions and entitlements tables.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from prepx.config.plans import (
    FREE_TIER_DAILY_LIMIT,
    GATED_FEATURES,
    UPGRADE_CTA_LOCKED,
    UPGRADE_CTA_PRO,
    limit_reached_cta,
)
from prepx.entitlements.errors import EntitlementStoreError
from prepx.entitlements.models import (
    REASON_DAILY_LIMIT_RESET,
    REASON_FEATURE_NOT_IN_TIER,
    REASON_FREE_TIER_WITHIN_LIMIT,
    REASON_LIMIT_REACHED,
    REASON_MONTHLY_LIMIT_RESET,
    REASON_SUBSCRIPTION_ACTIVE,
    REASON_TRIAL_ACTIVE,
    REASON_UNLIMITED,
    REASON_WITHIN_LIMIT,
    TIER_FREE,
    TIER_PRO,
    TIER_TRIAL,
    EntitlementDecision,
)
from prepx.models.entitlement import Entitlement, LimitType
from prepx.models.subscription import ACCESS_STATUSES, Subscription, SubscriptionStatus
from prepx.utils.clock import ensure_utc, utc_now

logger = logging.getLogger(__name__)

RESET_WINDOWS = {
    LimitType.DAILY.value: timedelta(days=1),
    LimitType.MONTHLY.value: timedelta(days=30),
}

RESET_REASONS = {
    LimitType.DAILY.value: REASON_DAILY_LIMIT_RESET,
    LimitType.MONTHLY.value: REASON_MONTHLY_LIMIT_RESET,
}


class EntitlementStore(ABC):
    """Backing store for entitlement decisions and usage accounting."""

    @abstractmethod
    def lookup(self, user_id: str, feature_slug: str) -> Optional[EntitlementDecision]:
        """Return the decision for (user, feature), or None when the store has no answer."""

    @abstractmethod
    def increment(self, user_id: str, feature_slug: str) -> Optional[int]:
        """Add one use and return the new usage count (None when no row exists)."""


class SqlEntitlementStore(EntitlementStore):
    """
    SQLAlchemy implementation of the entitlement decision function.

    Each lookup runs in its own transaction. The lookup may reset an expired
    usage window or create a missing free-tier row; it never changes
    subscription status.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        known_features: Iterable[str] = GATED_FEATURES,
        free_daily_limit: int = FREE_TIER_DAILY_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self.known_features = frozenset(known_features)
        self.free_daily_limit = free_daily_limit
        self._clock = clock

    def lookup(self, user_id: str, feature_slug: str) -> Optional[EntitlementDecision]:
        if feature_slug not in self.known_features:
            logger.info("Unknown feature slug", extra={"feature_slug": feature_slug})
            return None

        try:
            return self._lookup_once(user_id, feature_slug)
        except IntegrityError:
            # Concurrent request created the free-tier row first; read it back
            logger.info(
                "Free-tier row created concurrently, retrying lookup",
                extra={"user_id": user_id, "feature_slug": feature_slug},
            )
        except SQLAlchemyError as e:
            raise EntitlementStoreError(user_id, feature_slug, str(e), cause=e) from e

        try:
            return self._lookup_once(user_id, feature_slug)
        except SQLAlchemyError as e:
            raise EntitlementStoreError(user_id, feature_slug, str(e), cause=e) from e

    def increment(self, user_id: str, feature_slug: str) -> Optional[int]:
        now = self._clock()
        condition = (Entitlement.user_id == user_id) & (Entitlement.feature_slug == feature_slug)
        try:
            with self._session_factory() as session, session.begin():
                result = session.execute(
                    update(Entitlement)
                    .where(condition)
                    .values(usage_count=Entitlement.usage_count + 1, updated_at=now)
                )
                if result.rowcount == 0:
                    return None
                return session.execute(
                    select(Entitlement.usage_count).where(condition)
                ).scalar_one()
        except SQLAlchemyError as e:
            raise EntitlementStoreError(user_id, feature_slug, str(e), cause=e) from e

    def _lookup_once(self, user_id: str, feature_slug: str) -> EntitlementDecision:
        now = self._clock()
        with self._session_factory() as session, session.begin():
            subscription = session.execute(
                select(Subscription).where(Subscription.user_id == user_id)
            ).scalar_one_or_none()
            entitlement = session.execute(
                select(Entitlement).where(
                    Entitlement.user_id == user_id,
                    Entitlement.feature_slug == feature_slug,
                )
            ).scalar_one_or_none()

            tier = tier_for_subscription(subscription, now)
            if tier != TIER_FREE:
                return EntitlementDecision(
                    allowed=True,
                    reason=REASON_TRIAL_ACTIVE if tier == TIER_TRIAL else REASON_SUBSCRIPTION_ACTIVE,
                    tier=tier,
                    show_paywall=False,
                    upgrade_cta="",
                    limit_type=LimitType.UNLIMITED.value,
                    limit_value=None,
                    usage_count=entitlement.usage_count if entitlement is not None else 0,
                )

            created = False
            if entitlement is None:
                entitlement = Entitlement(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    feature_slug=feature_slug,
                    limit_type=LimitType.DAILY.value,
                    limit_value=self.free_daily_limit,
                    usage_count=0,
                    last_reset_at=now,
                    updated_at=now,
                )
                session.add(entitlement)
                session.flush()
                created = True

            return self._decide_free(user_id, entitlement, created, now)

    def _decide_free(
        self,
        user_id: str,
        entitlement: Entitlement,
        created: bool,
        now: datetime,
    ) -> EntitlementDecision:
        limit_type = entitlement.limit_type

        if limit_type == LimitType.UNLIMITED.value:
            return EntitlementDecision(
                allowed=True,
                reason=REASON_UNLIMITED,
                tier=TIER_FREE,
                show_paywall=False,
                upgrade_cta="",
                limit_type=limit_type,
                limit_value=None,
                usage_count=entitlement.usage_count,
            )

        if limit_type == LimitType.NONE.value:
            return EntitlementDecision(
                allowed=False,
                reason=REASON_FEATURE_NOT_IN_TIER,
                tier=TIER_FREE,
                show_paywall=True,
                upgrade_cta=UPGRADE_CTA_LOCKED,
                limit_type=limit_type,
                limit_value=None,
                usage_count=None,
            )

        window = RESET_WINDOWS.get(limit_type)
        if window is None:
            raise EntitlementStoreError(
                user_id, entitlement.feature_slug, f"unsupported limit_type '{limit_type}'"
            )

        reset = False
        last_reset_at = ensure_utc(entitlement.last_reset_at)
        if not created and (last_reset_at is None or now - last_reset_at >= window):
            entitlement.usage_count = 0
            entitlement.last_reset_at = now
            entitlement.updated_at = now
            reset = True

        limit_value = entitlement.limit_value
        if limit_value is None:
            limit_value = self.free_daily_limit
        usage_count = entitlement.usage_count or 0

        if usage_count < limit_value:
            if created:
                reason = REASON_FREE_TIER_WITHIN_LIMIT
            elif reset:
                reason = RESET_REASONS[limit_type]
            else:
                reason = REASON_WITHIN_LIMIT
            return EntitlementDecision(
                allowed=True,
                reason=reason,
                tier=TIER_FREE,
                show_paywall=False,
                upgrade_cta=UPGRADE_CTA_PRO,
                limit_type=limit_type,
                limit_value=limit_value,
                usage_count=usage_count,
            )

        return EntitlementDecision(
            allowed=False,
            reason=REASON_LIMIT_REACHED,
            tier=TIER_FREE,
            show_paywall=True,
            upgrade_cta=limit_reached_cta(limit_value, limit_type),
            limit_type=limit_type,
            limit_value=limit_value,
            usage_count=usage_count,
        )


def tier_for_subscription(subscription: Optional[Subscription], now: datetime) -> str:
    """
    Tier implied by a subscription row.

    Canceled subscriptions keep pro access until their expiry; paused and
    expired ones fall back to the free tier.
    """
    if subscription is None or subscription.status not in ACCESS_STATUSES:
        return TIER_FREE
    expires_at = ensure_utc(subscription.access_expires_at)
    if expires_at is not None and expires_at <= now:
        return TIER_FREE
    if subscription.status == SubscriptionStatus.TRIAL.value:
        return TIER_TRIAL
    return TIER_PRO
