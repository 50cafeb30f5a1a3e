"""
Billing provider webhook endpoint.

SECURITY:
- Payloads are verified with HMAC-SHA256 over the raw body when
  BILLING_WEBHOOK_SECRET is set
- No user authentication (calls come from the billing provider)
- The internal user id is resolved from the event, never trusted from headers

Unknown users are acknowledged with 200 so the provider does not retry
forever; processing failures return 500 so it does.
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from prepx.api.dependencies.services import get_reconciler
from prepx.billing.errors import SignatureMismatchError, WebhookPayloadError, WebhookProcessingError
from prepx.billing.events import SUPPORTED_EVENT_TYPES, parse_envelope
from prepx.billing.signature import SIGNATURE_HEADER, verify_signature
from prepx.platform.errors import get_correlation_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/billing", tags=["webhooks"])


async def verify_webhook(request: Request) -> bytes:
    """
    Verify the billing webhook signature.

    Returns:
        Raw request body bytes

    Raises:
        SignatureMismatchError: the signature is missing or invalid
    """
    body = await request.body()
    config = request.app.state.config

    if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), config.billing_webhook_secret):
        logger.warning("Invalid webhook signature", extra={"path": request.url.path})
        raise SignatureMismatchError()
    return body


@router.post("")
async def handle_billing_webhook(request: Request):
    """Apply one subscription lifecycle event."""
    try:
        body = await verify_webhook(request)
    except SignatureMismatchError as e:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": e.message})

    try:
        envelope = parse_envelope(body)
    except WebhookPayloadError as e:
        logger.error("Invalid webhook payload", extra={"error": e.message})
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": e.message},
        )

    reconciler = get_reconciler(request)
    try:
        outcome = await run_in_threadpool(
            reconciler.apply_billing_event, envelope, get_correlation_id(request)
        )
    except WebhookProcessingError as e:
        cause = e.cause if e.cause is not None else e
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed", "message": str(cause)},
        )

    return outcome.to_response()


@router.get("")
async def billing_webhook_info():
    """Liveness probe for the webhook endpoint."""
    return {
        "status": "ok",
        "endpoint": "/webhooks/billing",
        "supported_events": list(SUPPORTED_EVENT_TYPES),
    }
