"""Read-only subscription summary for the signed-in user."""

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from prepx.entitlements.models import TIER_FREE, TIER_TRIAL
from prepx.entitlements.store import tier_for_subscription
from prepx.models.plan import Plan
from prepx.models.subscription import Subscription
from prepx.utils.clock import ensure_utc, utc_now

STATUS_NONE = "none"


@dataclass
class SubscriptionSummary:
    status: str
    plan_slug: Optional[str] = None
    is_trial_active: bool = False
    is_subscription_active: bool = False
    days_remaining: Optional[int] = None
    auto_renew: bool = False
    expires_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def get_subscription_summary(
    session: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> SubscriptionSummary:
    now = now or utc_now()
    row = session.execute(
        select(Subscription, Plan.slug)
        .outerjoin(Plan, Plan.id == Subscription.plan_id)
        .where(Subscription.user_id == user_id)
    ).first()
    if row is None:
        return SubscriptionSummary(status=STATUS_NONE)

    subscription, plan_slug = row
    tier = tier_for_subscription(subscription, now)
    expires_at = ensure_utc(subscription.access_expires_at)

    days_remaining = None
    if expires_at is not None:
        days_remaining = max(0, math.ceil((expires_at - now).total_seconds() / 86400))

    return SubscriptionSummary(
        status=subscription.status,
        plan_slug=plan_slug,
        is_trial_active=tier == TIER_TRIAL,
        is_subscription_active=tier != TIER_FREE,
        days_remaining=days_remaining,
        auto_renew=bool(subscription.auto_renew),
        expires_at=expires_at.isoformat() if expires_at is not None else None,
    )
