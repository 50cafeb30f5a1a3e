"""
Subscription State Reconciler.

Applies billing provider events to the subscriptions and entitlements
tables. The subscription upsert and the entitlement grant/revoke for one
event commit in a single transaction.

Ordering: each subscription remembers the timestamp of the last applied
event. An event strictly older than that is acknowledged but not applied;
an event with the same timestamp is re-applied so redeliveries converge.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from prepx.billing.errors import WebhookProcessingError
from prepx.billing.events import BillingEvent, BillingEventType, BillingWebhookEnvelope
from prepx.billing.transitions import EntitlementAction, Transition, transition_for
from prepx.billing.users import UserDirectory
from prepx.config.plans import FREE_TIER_DAILY_LIMIT, PRO_FEATURES, plan_slug_for_product
from prepx.database.upsert import bulk_upsert, upsert
from prepx.models.entitlement import Entitlement, LimitType
from prepx.models.plan import Plan
from prepx.models.subscription import Subscription, SubscriptionStatus
from prepx.platform.audit import (
    AuditAction,
    AuditEvent,
    AuditOutcome,
    record_audit_event,
    webhook_action,
)
from prepx.utils.clock import ensure_utc, from_epoch_ms, utc_now

logger = logging.getLogger(__name__)

RESULT_APPLIED = "applied"
RESULT_TEST = "test"
RESULT_IGNORED = "ignored"
RESULT_STALE = "stale"
RESULT_USER_NOT_FOUND = "user_not_found"

# Statuses the lapsed-subscription sweep may move to expired
SWEEPABLE_STATUSES = frozenset({
    SubscriptionStatus.TRIAL.value,
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.CANCELED.value,
    SubscriptionStatus.PAUSED.value,
})

_CARRIED_PERIOD_COLUMNS = ("subscription_started_at", "subscription_expires_at")


@dataclass
class ReconcileOutcome:
    """What happened to one webhook delivery."""
    result: str
    event_type: str
    event_id: Optional[str] = None
    user_id: Optional[str] = None
    status: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        if self.result == RESULT_TEST:
            return {"received": True, "type": "test"}
        if self.result == RESULT_USER_NOT_FOUND:
            return {"received": True, "warning": "User not found"}

        body: Dict[str, Any] = {
            "received": True,
            "user_id": self.user_id,
            "event_type": self.event_type,
        }
        if self.result == RESULT_STALE:
            body["stale"] = True
        elif self.result == RESULT_IGNORED:
            body["ignored"] = True
        return body


def grant_rows(user_id: str, now: datetime) -> List[Dict[str, Any]]:
    """Unlimited rows for every pro feature."""
    return [
        {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "feature_slug": feature,
            "limit_type": LimitType.UNLIMITED.value,
            "limit_value": None,
            "usage_count": 0,
            "updated_at": now,
        }
        for feature in PRO_FEATURES
    ]


def revoke_rows(user_id: str, now: datetime, free_daily_limit: int = FREE_TIER_DAILY_LIMIT) -> List[Dict[str, Any]]:
    """Free-tier daily rows for every pro feature, with usage reset."""
    return [
        {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "feature_slug": feature,
            "limit_type": LimitType.DAILY.value,
            "limit_value": free_daily_limit,
            "usage_count": 0,
            "last_reset_at": now,
            "updated_at": now,
        }
        for feature in PRO_FEATURES
    ]


class SubscriptionReconciler:
    """
    Reconciles subscription and entitlement state from billing events.

    Each call opens its own session from ``session_factory``. Audit events
    are written in a separate session after the state transaction so an
    audit failure never rolls back state.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        free_daily_limit: int = FREE_TIER_DAILY_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self.free_daily_limit = free_daily_limit
        self._clock = clock

    def apply_billing_event(
        self,
        envelope: BillingWebhookEnvelope,
        correlation_id: Optional[str] = None,
    ) -> ReconcileOutcome:
        """
        Apply one verified webhook event.

        Raises:
            WebhookProcessingError: any failure while resolving or writing state
        """
        event = envelope.event
        event_type = event.normalized_type

        logger.info("Received billing webhook", extra={
            "event_type": event_type,
            "event_id": event.id,
            "product_id": event.product_id,
            "environment": event.environment,
        })

        if event_type == BillingEventType.TEST.value:
            self._audit(event, None, AuditOutcome.SUCCESS, correlation_id)
            return ReconcileOutcome(result=RESULT_TEST, event_type=event_type, event_id=event.id)

        try:
            outcome = self._apply(event, event_type)
        except Exception as e:
            logger.error(
                "Billing webhook processing failed",
                extra={"event_type": event_type, "event_id": event.id, "error": str(e)},
                exc_info=True,
            )
            self._audit(
                event, None, AuditOutcome.FAILURE, correlation_id,
                error_code=type(e).__name__,
            )
            raise WebhookProcessingError(
                "Webhook processing failed", event_id=event.id, cause=e
            ) from e

        if outcome.result == RESULT_USER_NOT_FOUND:
            logger.warning("User not found for billing event", extra={
                "event_type": event_type,
                "event_id": event.id,
                "candidates": len(event.user_candidates()),
            })
            self._audit(event, None, AuditOutcome.FAILURE, correlation_id, error_code="user_not_found")
        elif outcome.result == RESULT_IGNORED:
            logger.info("Billing event type not applied", extra={
                "event_type": event_type,
                "event_id": event.id,
            })
            self._audit(event, outcome.user_id, AuditOutcome.IGNORED, correlation_id)
        elif outcome.result == RESULT_STALE:
            logger.warning("Skipping out-of-order billing event", extra={
                "event_type": event_type,
                "event_id": event.id,
                "user_id": outcome.user_id,
            })
            self._audit(event, outcome.user_id, AuditOutcome.STALE, correlation_id)
        else:
            logger.info("Billing event applied", extra={
                "event_type": event_type,
                "event_id": event.id,
                "user_id": outcome.user_id,
                "status": outcome.status,
            })
            self._audit(event, outcome.user_id, AuditOutcome.SUCCESS, correlation_id, status=outcome.status)

        return outcome

    def _apply(self, event: BillingEvent, event_type: str) -> ReconcileOutcome:
        now = self._clock()
        with self._session_factory() as session, session.begin():
            user_id = UserDirectory(session).resolve(event.user_candidates())
            if user_id is None:
                return ReconcileOutcome(
                    result=RESULT_USER_NOT_FOUND, event_type=event_type, event_id=event.id
                )

            transition = transition_for(event)
            if transition is None:
                return ReconcileOutcome(
                    result=RESULT_IGNORED, event_type=event_type, event_id=event.id, user_id=user_id
                )

            existing = session.execute(
                select(Subscription).where(Subscription.user_id == user_id).with_for_update()
            ).scalar_one_or_none()

            event_at = from_epoch_ms(event.occurred_at_ms)
            last_event_at = ensure_utc(existing.last_event_at) if existing is not None else None
            if event_at is not None and last_event_at is not None and event_at < last_event_at:
                return ReconcileOutcome(
                    result=RESULT_STALE,
                    event_type=event_type,
                    event_id=event.id,
                    user_id=user_id,
                    status=existing.status,
                )

            values = self._subscription_values(session, user_id, event, event_type, transition, existing, now)
            upsert(session, Subscription, values, conflict_columns=["user_id"])
            self._apply_entitlements(session, user_id, transition.action, now)

        return ReconcileOutcome(
            result=RESULT_APPLIED,
            event_type=event_type,
            event_id=event.id,
            user_id=user_id,
            status=transition.status,
        )

    def _subscription_values(
        self,
        session: Session,
        user_id: str,
        event: BillingEvent,
        event_type: str,
        transition: Transition,
        existing: Optional[Subscription],
        now: datetime,
    ) -> Dict[str, Any]:
        started_at = from_epoch_ms(event.purchased_at_ms)
        expires_at = from_epoch_ms(event.expiration_at_ms)
        event_at = from_epoch_ms(event.occurred_at_ms)
        is_cancellation = event_type == BillingEventType.CANCELLATION.value

        values: Dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "plan_id": self._resolve_plan_id(session, event.product_id),
            "status": transition.status,
            "subscription_started_at": started_at,
            "subscription_expires_at": expires_at,
            "trial_started_at": started_at if event.is_trial else None,
            "trial_expires_at": expires_at if event.is_trial else None,
            "billing_subscription_id": event.original_transaction_id,
            "auto_renew": not is_cancellation,
            "canceled_at": (event_at or now) if is_cancellation else None,
            "last_event_id": event.id,
            "last_event_type": event_type,
            "last_event_at": event_at,
            "updated_at": now,
        }

        if existing is not None:
            # Events without timing data keep what is already known
            for column in _CARRIED_PERIOD_COLUMNS:
                if values[column] is None:
                    values[column] = getattr(existing, column)
            if values["last_event_at"] is None:
                values["last_event_at"] = existing.last_event_at
            if values["billing_subscription_id"] is None:
                values["billing_subscription_id"] = existing.billing_subscription_id
            if values["plan_id"] is None and not event.product_id:
                values["plan_id"] = existing.plan_id

        return values

    def _resolve_plan_id(self, session: Session, product_id: Optional[str]) -> Optional[str]:
        plan_slug = plan_slug_for_product(product_id)
        if plan_slug is None:
            if product_id:
                logger.warning("Unmapped billing product", extra={"product_id": product_id})
            return None

        plan_id = session.execute(select(Plan.id).where(Plan.slug == plan_slug)).scalar_one_or_none()
        if plan_id is None:
            logger.warning("Plan not found for product", extra={
                "product_id": product_id,
                "plan_slug": plan_slug,
            })
        return plan_id

    def _apply_entitlements(
        self,
        session: Session,
        user_id: str,
        action: EntitlementAction,
        now: datetime,
    ) -> None:
        if action == EntitlementAction.GRANT:
            bulk_upsert(session, Entitlement, grant_rows(user_id, now), ["user_id", "feature_slug"])
        elif action == EntitlementAction.REVOKE:
            bulk_upsert(
                session,
                Entitlement,
                revoke_rows(user_id, now, self.free_daily_limit),
                ["user_id", "feature_slug"],
            )

    def expire_lapsed(self, user_id: str, now: Optional[datetime] = None) -> bool:
        """
        Expire a subscription whose access window has passed and revoke pro rows.

        Returns True when the subscription was moved to expired.
        """
        now = now or self._clock()
        with self._session_factory() as session, session.begin():
            subscription = session.execute(
                select(Subscription).where(Subscription.user_id == user_id).with_for_update()
            ).scalar_one_or_none()
            if subscription is None or subscription.status not in SWEEPABLE_STATUSES:
                return False

            expires_at = ensure_utc(subscription.access_expires_at)
            if expires_at is None or expires_at > now:
                return False

            previous_status = subscription.status
            subscription.status = SubscriptionStatus.EXPIRED.value
            subscription.updated_at = now
            session.flush()
            self._apply_entitlements(session, user_id, EntitlementAction.REVOKE, now)

        logger.info("Expired lapsed subscription", extra={
            "user_id": user_id,
            "previous_status": previous_status,
        })
        record_audit_event(self._session_factory, AuditEvent(
            action=AuditAction.SUBSCRIPTION_EXPIRED_BY_SWEEP,
            user_id=user_id,
            resource_type="subscription",
            resource_id=user_id,
            metadata={"previous_status": previous_status, "expired_at": expires_at.isoformat()},
            source="job",
        ))
        return True

    def regrant_pro_entitlements(self, user_id: str, now: Optional[datetime] = None) -> None:
        """Restore unlimited pro rows for a subscriber whose rows drifted."""
        now = now or self._clock()
        with self._session_factory() as session, session.begin():
            self._apply_entitlements(session, user_id, EntitlementAction.GRANT, now)

        logger.info("Re-granted pro entitlements", extra={"user_id": user_id})
        record_audit_event(self._session_factory, AuditEvent(
            action=AuditAction.ENTITLEMENTS_REGRANTED_BY_SWEEP,
            user_id=user_id,
            resource_type="entitlement",
            resource_id=user_id,
            source="job",
        ))

    def _audit(
        self,
        event: BillingEvent,
        user_id: Optional[str],
        outcome: AuditOutcome,
        correlation_id: Optional[str],
        error_code: Optional[str] = None,
        status: Optional[str] = None,
    ) -> None:
        metadata = {
            "event_id": event.id,
            "event_type": event.type,
            "app_user_id": event.app_user_id,
            "product_id": event.product_id,
            "environment": event.environment,
            "status": status,
        }
        audit_event = AuditEvent(
            action=webhook_action(event.normalized_type),
            user_id=user_id,
            resource_type="subscription",
            resource_id=user_id,
            metadata=metadata,
            source="webhook",
            outcome=outcome,
            error_code=error_code,
        )
        if correlation_id:
            audit_event.correlation_id = correlation_id
        record_audit_event(self._session_factory, audit_event)
