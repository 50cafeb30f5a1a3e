"""Per-user, per-feature entitlement records."""

import enum
import uuid

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from prepx.db_base import Base


class LimitType(str, enum.Enum):
    UNLIMITED = "unlimited"
    DAILY = "daily"
    MONTHLY = "monthly"
    NONE = "none"  # feature not available in the user's tier


class Entitlement(Base):
    """
    One row per (user, feature).

    usage_count <= limit_value is checked at read time by the gate, not
    enforced on write.
    """
    __tablename__ = "entitlements"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    feature_slug = Column(String(100), nullable=False)
    limit_type = Column(String(20), nullable=False, default=LimitType.DAILY.value)
    limit_value = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    last_reset_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "feature_slug", name="uq_entitlements_user_feature"),
    )
