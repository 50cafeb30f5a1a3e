"""
Billing provider webhook envelope.

Only the fields the reconciler reads are declared; the provider sends many
more (price, currency, store, offering ...) which are accepted and ignored.
"""

import enum
import json
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from prepx.billing.errors import WebhookPayloadError


class BillingEventType(str, enum.Enum):
    INITIAL_PURCHASE = "INITIAL_PURCHASE"
    RENEWAL = "RENEWAL"
    CANCELLATION = "CANCELLATION"
    UNCANCELLATION = "UNCANCELLATION"
    EXPIRATION = "EXPIRATION"
    BILLING_ISSUE = "BILLING_ISSUE"
    PRODUCT_CHANGE = "PRODUCT_CHANGE"
    SUBSCRIBER_ALIAS = "SUBSCRIBER_ALIAS"
    TRANSFER = "TRANSFER"
    TEST = "TEST"


class PeriodType(str, enum.Enum):
    TRIAL = "TRIAL"
    NORMAL = "NORMAL"
    INTRO = "INTRO"


# 9999-12-31T23:59:59.999Z, the last instant a datetime can hold
MAX_EPOCH_MS = 253_402_300_799_999


SUPPORTED_EVENT_TYPES = [
    BillingEventType.INITIAL_PURCHASE.value,
    BillingEventType.RENEWAL.value,
    BillingEventType.CANCELLATION.value,
    BillingEventType.UNCANCELLATION.value,
    BillingEventType.EXPIRATION.value,
    BillingEventType.BILLING_ISSUE.value,
    BillingEventType.PRODUCT_CHANGE.value,
    BillingEventType.TEST.value,
]


class BillingEvent(BaseModel):
    """A single provider event."""
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1, description="Provider event type")
    id: Optional[str] = Field(None, description="Provider event id")
    app_user_id: Optional[str] = None
    original_app_user_id: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    product_id: Optional[str] = None
    entitlement_ids: Optional[List[str]] = None
    period_type: Optional[str] = None
    purchased_at_ms: Optional[int] = Field(None, ge=0, le=MAX_EPOCH_MS)
    expiration_at_ms: Optional[int] = Field(None, ge=0, le=MAX_EPOCH_MS)
    event_timestamp_ms: Optional[int] = Field(None, ge=0, le=MAX_EPOCH_MS)
    environment: Optional[str] = None
    store: Optional[str] = None
    transaction_id: Optional[str] = None
    original_transaction_id: Optional[str] = None

    @property
    def is_trial(self) -> bool:
        return (self.period_type or "").upper() == PeriodType.TRIAL.value

    @property
    def normalized_type(self) -> str:
        return self.type.strip().upper()

    @property
    def occurred_at_ms(self) -> Optional[int]:
        """Event time used for ordering: event timestamp, else purchase time."""
        if self.event_timestamp_ms is not None:
            return self.event_timestamp_ms
        return self.purchased_at_ms

    def user_candidates(self) -> List[str]:
        """Identifiers to try, in order, when resolving the internal user."""
        seen: List[str] = []
        for candidate in [self.app_user_id, self.original_app_user_id, *self.aliases]:
            value = (candidate or "").strip()
            if value and value not in seen:
                seen.append(value)
        return seen


class BillingWebhookEnvelope(BaseModel):
    """Top-level webhook body: {api_version, event}."""
    model_config = ConfigDict(extra="allow")

    api_version: Optional[str] = None
    event: BillingEvent


def parse_envelope(raw_body: bytes) -> BillingWebhookEnvelope:
    """
    Parse and validate a raw webhook body.

    Raises:
        WebhookPayloadError: body is not JSON or not a valid envelope
    """
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise WebhookPayloadError("Invalid JSON payload") from e

    if not isinstance(data, dict):
        raise WebhookPayloadError("Webhook payload must be a JSON object")

    try:
        return BillingWebhookEnvelope.model_validate(data)
    except PydanticValidationError as e:
        raise WebhookPayloadError(f"Invalid webhook envelope: {e.error_count()} error(s)") from e
