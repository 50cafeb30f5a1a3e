"""
Database models for users, plans, subscriptions and entitlements.

Importing this package registers every mapper on the shared Base.
"""

from prepx.models.user import User
from prepx.models.plan import Plan
from prepx.models.subscription import Subscription, SubscriptionStatus, ACCESS_STATUSES
from prepx.models.entitlement import Entitlement, LimitType
from prepx.models.audit_log import AuditLog

__all__ = [
    "User",
    "Plan",
    "Subscription",
    "SubscriptionStatus",
    "ACCESS_STATUSES",
    "Entitlement",
    "LimitType",
    "AuditLog",
]
