"""Accessors for the services wired onto ``app.state`` by create_app()."""

import logging
from typing import Optional

from fastapi import Request

from prepx.billing.reconciler import SubscriptionReconciler
from prepx.entitlements.gate import EntitlementGate
from prepx.platform.auth import Principal, TokenVerifier, extract_bearer_token
from prepx.platform.errors import AuthenticationError, ServiceUnavailableError

logger = logging.getLogger(__name__)


def _state_attr(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        logger.error("Service not configured on app state", extra={"service": name})
        raise ServiceUnavailableError(f"{name} not configured")
    return value


def get_entitlement_gate(request: Request) -> EntitlementGate:
    return _state_attr(request, "entitlement_gate")


def get_reconciler(request: Request) -> SubscriptionReconciler:
    return _state_attr(request, "reconciler")


def get_token_verifier(request: Request) -> TokenVerifier:
    return _state_attr(request, "token_verifier")


def resolve_principal(request: Request) -> Optional[Principal]:
    """
    Resolve the bearer token on the request, or None when it is missing or invalid.

    Used by endpoints that answer unauthenticated callers with a contract body
    instead of the standard error shape.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        return None
    try:
        principal = get_token_verifier(request).verify(token)
    except AuthenticationError:
        return None
    request.state.user_id = principal.user_id
    return principal


def get_current_principal(request: Request) -> Principal:
    """Dependency requiring an authenticated principal (401 otherwise)."""
    principal = resolve_principal(request)
    if principal is None:
        raise AuthenticationError()
    return principal
