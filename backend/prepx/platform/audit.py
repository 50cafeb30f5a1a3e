"""
Audit logging for billing and entitlement activity.

REQUIREMENTS:
- Audit logs are append-only (no UPDATE/DELETE)
- Every billing webhook delivery writes an audit event (success or failure)
- PII fields are redacted before persistence
- Audit writes are best-effort: failures fall back to the "audit.fallback"
  logger and never fail the caller
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, FrozenSet, Optional

from sqlalchemy import JSON, Column, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session

from prepx.db_base import Base

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("audit.fallback")


class AuditAction(str, Enum):
    """Enumeration of auditable actions."""
    # Billing webhook events (billing_webhook.<provider event type>)
    BILLING_WEBHOOK_INITIAL_PURCHASE = "billing_webhook.initial_purchase"
    BILLING_WEBHOOK_RENEWAL = "billing_webhook.renewal"
    BILLING_WEBHOOK_CANCELLATION = "billing_webhook.cancellation"
    BILLING_WEBHOOK_UNCANCELLATION = "billing_webhook.uncancellation"
    BILLING_WEBHOOK_EXPIRATION = "billing_webhook.expiration"
    BILLING_WEBHOOK_BILLING_ISSUE = "billing_webhook.billing_issue"
    BILLING_WEBHOOK_PRODUCT_CHANGE = "billing_webhook.product_change"
    BILLING_WEBHOOK_TEST = "billing_webhook.test"

    # Reconciliation job
    SUBSCRIPTION_EXPIRED_BY_SWEEP = "subscription.expired_by_sweep"
    ENTITLEMENTS_REGRANTED_BY_SWEEP = "entitlements.regranted_by_sweep"


class AuditOutcome(str, Enum):
    """Outcome of the audited action."""
    SUCCESS = "success"
    FAILURE = "failure"
    IGNORED = "ignored"
    STALE = "stale"


def webhook_action(event_type: str) -> str:
    """Audit action name for a provider event type, including unknown ones."""
    return f"billing_webhook.{(event_type or 'unknown').lower()}"


class PIIRedactor:
    """
    Redacts PII fields from audit metadata before persistence.

    Redacted fields are replaced with "[REDACTED]" to maintain
    structure while removing sensitive data.
    """

    REDACTED_FIELDS: FrozenSet[str] = frozenset({
        "email",
        "app_user_id",
        "original_app_user_id",
        "aliases",
        "phone",
        "phone_number",
        "token",
        "access_token",
        "api_key",
        "password",
        "secret",
        "signature",
    })

    REDACTION_MARKER = "[REDACTED]"

    @classmethod
    def redact(cls, data: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(data, dict):
            return data
        return cls._redact_dict(data)

    @classmethod
    def _redact_dict(cls, d: dict[str, Any]) -> dict[str, Any]:
        result = {}
        for key, value in d.items():
            lower_key = key.lower()
            if lower_key in cls.REDACTED_FIELDS:
                result[key] = cls._redact_value(lower_key, value)
            elif isinstance(value, dict):
                result[key] = cls._redact_dict(value)
            elif isinstance(value, list):
                result[key] = [cls._redact_dict(v) if isinstance(v, dict) else v for v in value]
            else:
                result[key] = value
        return result

    @classmethod
    def _redact_value(cls, key: str, value: Any) -> Any:
        """Redact a single value; emails keep their domain, ids that are not emails pass."""
        if value is None:
            return cls.REDACTION_MARKER
        if isinstance(value, list):
            return [cls._redact_value(key, v) for v in value]
        if isinstance(value, str) and "@" in value:
            return f"***@{value.split('@', 1)[1]}"
        if key in ("app_user_id", "original_app_user_id", "aliases"):
            # Opaque provider/user ids are not PII
            return value
        if key in ("phone", "phone_number"):
            str_val = str(value)
            if len(str_val) >= 4:
                return f"***{str_val[-4:]}"
        return cls.REDACTION_MARKER


class AuditLog(Base):
    """
    Audit log database model.

    CRITICAL: This table is append-only. No UPDATE or DELETE operations are allowed.
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=True, index=True)  # NULL for unresolved/system events
    action = Column(String(100), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    resource_type = Column(String(100), nullable=True, index=True)
    resource_id = Column(String(255), nullable=True)
    event_metadata = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    correlation_id = Column(String(36), nullable=False, index=True)
    source = Column(String(50), nullable=False, default="webhook")  # api, webhook, job
    outcome = Column(String(20), nullable=False, default="success")
    error_code = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_audit_logs_user_timestamp", "user_id", "timestamp"),
    )


@dataclass
class AuditEvent:
    """
    Audit event data structure.

    PII in metadata is redacted in to_dict() before persistence.
    """
    action: str
    user_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    correlation_id: Optional[str] = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "webhook"
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    error_code: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for database insertion with PII redaction."""
        return {
            "user_id": self.user_id,
            "action": self.action.value if isinstance(self.action, AuditAction) else self.action,
            "timestamp": self.timestamp,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "event_metadata": PIIRedactor.redact(self.metadata),
            "correlation_id": self.correlation_id or str(uuid.uuid4()),
            "source": self.source,
            "outcome": self.outcome.value if isinstance(self.outcome, AuditOutcome) else self.outcome,
            "error_code": self.error_code,
        }


def write_audit_log_sync(db: Session, event: AuditEvent) -> Optional[AuditLog]:
    """
    Write an audit event to the database.

    Append-only. On failure, writes to the fallback logger and returns None
    (never raises).
    """
    audit_id = str(uuid.uuid4())
    try:
        audit_log = AuditLog(id=audit_id, **event.to_dict())
        db.add(audit_log)
        db.commit()

        logger.info(
            "Audit event recorded",
            extra={
                "audit_id": audit_id,
                "user_id": event.user_id,
                "action": audit_log.action,
                "correlation_id": audit_log.correlation_id,
                "outcome": audit_log.outcome,
            }
        )
        return audit_log

    except Exception as e:
        try:
            db.rollback()
        except Exception:
            logger.debug("Rollback after audit failure also failed", exc_info=True)

        _write_fallback_log(event, audit_id, str(e))
        return None


def record_audit_event(session_factory: Callable[[], Session], event: AuditEvent) -> Optional[AuditLog]:
    """Write an audit event in its own session, independent of the caller's transaction."""
    try:
        session = session_factory()
    except Exception as e:
        _write_fallback_log(event, str(uuid.uuid4()), str(e))
        return None
    try:
        return write_audit_log_sync(session, event)
    finally:
        session.close()


def _write_fallback_log(event: AuditEvent, audit_id: str, error_reason: str) -> None:
    """Write audit event to fallback logger when primary DB fails."""
    fallback_entry = {
        "event_id": audit_id,
        "user_id": event.user_id,
        "action": event.action.value if isinstance(event.action, AuditAction) else event.action,
        "timestamp": event.timestamp.isoformat(),
        "correlation_id": event.correlation_id,
        "source": event.source,
        "outcome": event.outcome.value if isinstance(event.outcome, AuditOutcome) else event.outcome,
        "resource_type": event.resource_type,
        "resource_id": event.resource_id,
        "metadata": PIIRedactor.redact(event.metadata),
        "fallback_reason": error_reason,
    }
    fallback_logger.error(
        "Audit log fallback",
        extra={"audit_entry": json.dumps(fallback_entry, default=str)},
    )
