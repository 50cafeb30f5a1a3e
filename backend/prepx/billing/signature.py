"""
Webhook signature verification.

Signature = hex(HMAC-SHA256(secret, raw_body)), sent in the
``x-provider-signature`` header. Comparison is constant-time.
"""

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-provider-signature"


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Verify a webhook signature.

    With no secret configured every payload is accepted (development mode);
    a warning is logged on each call so operators notice.
    """
    if not secret:
        logger.warning("BILLING_WEBHOOK_SECRET not set, skipping signature verification")
        return True

    if not signature:
        return False

    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.strip().lower().encode("utf-8"))
