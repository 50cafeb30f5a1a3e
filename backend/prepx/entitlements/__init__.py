"""
Entitlement gate for feature-level access control.

This module provides:
- EntitlementGate: fail-closed allow/deny with optional usage accounting
- EntitlementStore / SqlEntitlementStore: the decision function and its interface
- EntitlementCheckResult: the public contract returned to callers
"""

from prepx.entitlements.errors import EntitlementError, EntitlementStoreError
from prepx.entitlements.gate import EntitlementGate
from prepx.entitlements.models import (
    EntitlementCheckResult,
    EntitlementDecision,
    UsageSummary,
)
from prepx.entitlements.store import EntitlementStore, SqlEntitlementStore

__all__ = [
    "EntitlementError",
    "EntitlementStoreError",
    "EntitlementGate",
    "EntitlementCheckResult",
    "EntitlementDecision",
    "UsageSummary",
    "EntitlementStore",
    "SqlEntitlementStore",
]
