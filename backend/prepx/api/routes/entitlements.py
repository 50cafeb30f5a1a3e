"""
Entitlement check endpoints.

POST /entitlements/check  {feature_slug, increment_usage?}
GET  /entitlements/check?feature=<slug>

Authentication is resolved before the request is inspected, so an
unauthenticated caller always gets 401 regardless of the payload.
"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from prepx.api.dependencies.require_entitlement import status_code_for
from prepx.api.dependencies.services import get_entitlement_gate, resolve_principal
from prepx.entitlements.models import unauthorized_result
from prepx.platform.auth import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entitlements", tags=["entitlements"])

FEATURE_SLUG_REQUIRED = {"error": "feature_slug is required"}


def _unauthorized() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=unauthorized_result().to_dict(),
    )


def _slug_required() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=FEATURE_SLUG_REQUIRED)


async def _run_check(
    request: Request,
    principal: Principal,
    feature_slug: Any,
    increment_usage: bool,
) -> JSONResponse:
    slug = feature_slug.strip() if isinstance(feature_slug, str) else ""
    if not slug:
        return _slug_required()

    gate = get_entitlement_gate(request)
    result = await run_in_threadpool(gate.check, principal.user_id, slug, increment_usage)

    logger.info("Entitlement check", extra={
        "user_id": principal.user_id,
        "feature_slug": slug,
        "allowed": result.allowed,
        "reason": result.reason,
        "increment_usage": increment_usage,
    })
    return JSONResponse(status_code=status_code_for(result), content=result.to_dict())


@router.post("/check")
async def check_entitlement(request: Request):
    """Check (and optionally count) access to a gated feature."""
    principal = resolve_principal(request)
    if principal is None:
        return _unauthorized()

    try:
        body = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _slug_required()
    if not isinstance(body, dict):
        return _slug_required()

    increment_usage = body.get("increment_usage") is True
    return await _run_check(request, principal, body.get("feature_slug"), increment_usage)


@router.get("/check")
async def check_entitlement_query(request: Request, feature: Optional[str] = None):
    """Read-only variant; never counts usage."""
    principal = resolve_principal(request)
    if principal is None:
        return _unauthorized()
    return await _run_check(request, principal, feature, increment_usage=False)
