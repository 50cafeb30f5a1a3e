"""Subscription plans available for purchase."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from prepx.db_base import Base


class Plan(Base):
    """A purchasable plan, referenced by slug from billing product ids."""
    __tablename__ = "plans"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    price_inr = Column(Integer, nullable=True)
    duration_days = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
