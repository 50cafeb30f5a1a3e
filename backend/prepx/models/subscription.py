"""
Subscription model.

Exactly one row per user (unique user_id); rows are written only by the
billing reconciler through an upsert keyed on user_id.
"""

import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, func

from prepx.db_base import Base


class SubscriptionStatus(str, enum.Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELED = "canceled"
    EXPIRED = "expired"
    PAUSED = "paused"


# Statuses that still carry pro access until their expiry passes
ACCESS_STATUSES = frozenset({
    SubscriptionStatus.TRIAL.value,
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.CANCELED.value,
})


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, unique=True, index=True)
    plan_id = Column(String(36), ForeignKey("plans.id"), nullable=True)
    status = Column(String(20), nullable=False)

    subscription_started_at = Column(DateTime(timezone=True), nullable=True)
    subscription_expires_at = Column(DateTime(timezone=True), nullable=True)
    trial_started_at = Column(DateTime(timezone=True), nullable=True)
    trial_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Billing provider's original transaction id
    billing_subscription_id = Column(String(255), nullable=True, index=True)
    auto_renew = Column(Boolean, nullable=False, default=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    # Ordering guard: events older than last_event_at are not applied
    last_event_id = Column(String(255), nullable=True)
    last_event_type = Column(String(50), nullable=True)
    last_event_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def access_expires_at(self):
        if self.status == SubscriptionStatus.TRIAL.value and self.trial_expires_at is not None:
            return self.trial_expires_at
        return self.subscription_expires_at
