"""
Feature gate dependency.

Protected routes declare the feature they consume:

    @router.post("/notes/generate")
    def generate(result=Depends(require_entitlement("notes_generation"))):
        ...

The dependency answers 401 for unauthenticated callers, 403 for business
denies and 500 when the check itself failed; the HTTPException detail is the
entitlement contract body.
"""

import logging
from typing import Callable

from fastapi import HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from prepx.api.dependencies.services import get_entitlement_gate, resolve_principal
from prepx.entitlements.models import EntitlementCheckResult, unauthorized_result

logger = logging.getLogger(__name__)


def status_code_for(result: EntitlementCheckResult) -> int:
    """HTTP status for an entitlement check result."""
    if result.allowed:
        return status.HTTP_200_OK
    if result.is_unauthorized:
        return status.HTTP_401_UNAUTHORIZED
    if result.is_check_failure:
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_403_FORBIDDEN


def require_entitlement(feature_slug: str, increment_usage: bool = True) -> Callable:
    """Create a dependency that allows the request only when ``feature_slug`` is entitled."""

    async def _check(request: Request) -> EntitlementCheckResult:
        principal = resolve_principal(request)
        if principal is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=unauthorized_result().to_dict(),
            )

        gate = get_entitlement_gate(request)
        result = await run_in_threadpool(
            gate.check, principal.user_id, feature_slug, increment_usage
        )
        if not result.allowed:
            logger.warning(
                "Feature access denied",
                extra={
                    "user_id": principal.user_id,
                    "feature_slug": feature_slug,
                    "reason": result.reason,
                },
            )
            raise HTTPException(status_code=status_code_for(result), detail=result.to_dict())
        return result

    return _check
