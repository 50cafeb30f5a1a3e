"""
Entitlement error hierarchy.

Provides:
- EntitlementError: base for all entitlement failures
- EntitlementStoreError: the backing store could not produce a decision
"""

from typing import Optional


class EntitlementError(Exception):
    """Base exception for entitlement-related failures."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class EntitlementStoreError(EntitlementError):
    """
    Raised when the store lookup or increment fails.

    The gate converts this into a check_failed decision (fail-closed).
    """

    def __init__(
        self,
        user_id: str,
        feature_slug: str,
        detail: str,
        cause: Optional[Exception] = None,
    ):
        self.user_id = user_id
        self.feature_slug = feature_slug
        self.detail = detail
        self.cause = cause
        self.error_code = "ENTITLEMENT_STORE_FAILED"
        super().__init__(f"Entitlement store failed for {feature_slug}: {detail}")
