"""Event type to subscription status and entitlement action mapping."""

import enum
from dataclasses import dataclass
from typing import Dict, Optional

from prepx.billing.events import BillingEvent, BillingEventType
from prepx.models.subscription import SubscriptionStatus


class EntitlementAction(str, enum.Enum):
    GRANT = "grant"
    REVOKE = "revoke"
    NONE = "none"


@dataclass(frozen=True)
class Transition:
    status: str
    action: EntitlementAction


# Purchase-like events resolve to trial or active depending on period_type
_PURCHASE_EVENTS = frozenset({
    BillingEventType.INITIAL_PURCHASE.value,
    BillingEventType.RENEWAL.value,
    BillingEventType.UNCANCELLATION.value,
    BillingEventType.PRODUCT_CHANGE.value,
})

_FIXED_TRANSITIONS: Dict[str, Transition] = {
    BillingEventType.CANCELLATION.value: Transition(
        SubscriptionStatus.CANCELED.value, EntitlementAction.NONE
    ),
    BillingEventType.EXPIRATION.value: Transition(
        SubscriptionStatus.EXPIRED.value, EntitlementAction.REVOKE
    ),
    BillingEventType.BILLING_ISSUE.value: Transition(
        SubscriptionStatus.PAUSED.value, EntitlementAction.NONE
    ),
}


def transition_for(event: BillingEvent) -> Optional[Transition]:
    """Return the state transition for an event, or None when the type is not applied."""
    event_type = event.normalized_type
    if event_type in _PURCHASE_EVENTS:
        status = SubscriptionStatus.TRIAL.value if event.is_trial else SubscriptionStatus.ACTIVE.value
        return Transition(status, EntitlementAction.GRANT)
    return _FIXED_TRANSITIONS.get(event_type)
