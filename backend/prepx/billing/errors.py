"""Billing webhook error hierarchy."""

from typing import Optional


class BillingWebhookError(Exception):
    """Base exception for billing webhook handling."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class SignatureMismatchError(BillingWebhookError):
    """Webhook signature did not match the payload (401, no state change)."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, code="SIGNATURE_MISMATCH")


class WebhookPayloadError(BillingWebhookError):
    """Webhook body is not a valid event envelope (400)."""

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_PAYLOAD")


class WebhookProcessingError(BillingWebhookError):
    """
    Unexpected failure while applying an event (500).

    The provider retries; the upserts make the retry safe.
    """

    def __init__(self, message: str, event_id: Optional[str] = None, cause: Optional[Exception] = None):
        super().__init__(message, code="PROCESSING_FAILED")
        self.event_id = event_id
        self.cause = cause
