"""Billing provider webhooks and subscription state."""

from prepx.billing.errors import (
    BillingWebhookError,
    SignatureMismatchError,
    WebhookPayloadError,
    WebhookProcessingError,
)
from prepx.billing.events import (
    SUPPORTED_EVENT_TYPES,
    BillingEvent,
    BillingEventType,
    BillingWebhookEnvelope,
    parse_envelope,
)
from prepx.billing.reconciler import ReconcileOutcome, SubscriptionReconciler
from prepx.billing.signature import SIGNATURE_HEADER, compute_signature, verify_signature

__all__ = [
    "BillingWebhookError",
    "SignatureMismatchError",
    "WebhookPayloadError",
    "WebhookProcessingError",
    "SUPPORTED_EVENT_TYPES",
    "BillingEvent",
    "BillingEventType",
    "BillingWebhookEnvelope",
    "parse_envelope",
    "ReconcileOutcome",
    "SubscriptionReconciler",
    "SIGNATURE_HEADER",
    "compute_signature",
    "verify_signature",
]
