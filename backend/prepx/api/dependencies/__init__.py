"""FastAPI dependencies shared by the route modules."""

from prepx.api.dependencies.require_entitlement import require_entitlement
from prepx.api.dependencies.services import (
    get_current_principal,
    get_entitlement_gate,
    get_reconciler,
    resolve_principal,
)

__all__ = [
    "require_entitlement",
    "get_current_principal",
    "get_entitlement_gate",
    "get_reconciler",
    "resolve_principal",
]
