"""
Subscription reconciliation job.

Runs hourly to catch state that webhooks missed:
- subscriptions whose access window passed without an EXPIRATION event
- trial/active subscribers whose pro entitlement rows drifted

Run as a cron job:
    python -m prepx.jobs.reconcile_subscriptions
"""

import logging
import sys
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from prepx.billing.reconciler import SWEEPABLE_STATUSES, SubscriptionReconciler
from prepx.config.plans import PRO_FEATURES
from prepx.entitlements.models import TIER_FREE
from prepx.entitlements.store import tier_for_subscription
from prepx.models.entitlement import Entitlement, LimitType
from prepx.models.subscription import Subscription, SubscriptionStatus
from prepx.utils.clock import ensure_utc, utc_now

logger = logging.getLogger(__name__)

_GRANTED_STATUSES = (SubscriptionStatus.TRIAL.value, SubscriptionStatus.ACTIVE.value)


class SubscriptionReconciliationJob:
    """
    Expires lapsed subscriptions and repairs drifted entitlements.

    Each user is handled in its own transaction via the reconciler, so one
    failure does not stop the sweep.
    """

    def __init__(self, session_factory: Callable[[], Session], reconciler: SubscriptionReconciler):
        self._session_factory = session_factory
        self.reconciler = reconciler

    def run(self, now: Optional[datetime] = None) -> dict:
        """
        Execute the reconciliation job.

        Returns:
            Summary of reconciliation results
        """
        now = now or utc_now()
        logger.info("Starting subscription reconciliation job")

        results: Dict[str, object] = {
            "started_at": now.isoformat(),
            "subscriptions_checked": 0,
            "subscriptions_expired": 0,
            "entitlements_regranted": 0,
            "errors": [],
        }
        errors: List[str] = results["errors"]

        lapsed, drifted, checked = self._find_candidates(now)
        results["subscriptions_checked"] = checked

        for user_id in lapsed:
            try:
                if self.reconciler.expire_lapsed(user_id, now):
                    results["subscriptions_expired"] += 1
            except Exception as e:
                error_msg = f"Failed to expire subscription for user {user_id}: {e}"
                logger.error(error_msg, extra={"user_id": user_id})
                errors.append(error_msg)

        for user_id in drifted:
            try:
                self.reconciler.regrant_pro_entitlements(user_id, now)
                results["entitlements_regranted"] += 1
            except Exception as e:
                error_msg = f"Failed to re-grant entitlements for user {user_id}: {e}"
                logger.error(error_msg, extra={"user_id": user_id})
                errors.append(error_msg)

        results["completed_at"] = utc_now().isoformat()
        logger.info("Subscription reconciliation completed", extra=results)
        return results

    def _find_candidates(self, now: datetime):
        lapsed: List[str] = []
        drifted: List[str] = []

        with self._session_factory() as session:
            subscriptions = session.execute(
                select(Subscription).where(Subscription.status.in_(list(SWEEPABLE_STATUSES)))
            ).scalars().all()

            for subscription in subscriptions:
                expires_at = ensure_utc(subscription.access_expires_at)
                if expires_at is not None and expires_at <= now:
                    lapsed.append(subscription.user_id)
                elif (
                    subscription.status in _GRANTED_STATUSES
                    and tier_for_subscription(subscription, now) != TIER_FREE
                    and self._has_drifted(session, subscription.user_id)
                ):
                    drifted.append(subscription.user_id)

        return lapsed, drifted, len(subscriptions)

    @staticmethod
    def _has_drifted(session: Session, user_id: str) -> bool:
        unlimited = session.execute(
            select(Entitlement.feature_slug).where(
                Entitlement.user_id == user_id,
                Entitlement.feature_slug.in_(PRO_FEATURES),
                Entitlement.limit_type == LimitType.UNLIMITED.value,
            )
        ).scalars().all()
        return set(unlimited) != set(PRO_FEATURES)


def main() -> int:
    from prepx.config.settings import AppConfig
    from prepx.database.session import create_db_engine, create_session_factory

    config = AppConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    session_factory = create_session_factory(create_db_engine(config.database_url))
    reconciler = SubscriptionReconciler(session_factory, free_daily_limit=config.free_tier_daily_limit)
    results = SubscriptionReconciliationJob(session_factory, reconciler).run()
    logger.info("Reconciliation completed: %s", results)
    return 1 if results["errors"] else 0


# Entry point for cron/scheduler
if __name__ == "__main__":
    sys.exit(main())
