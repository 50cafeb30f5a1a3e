"""
Users mirrored from the auth provider.

The auth provider owns this table; the service only reads it to resolve
billing identifiers (emails) to internal user ids.
"""

import uuid

from sqlalchemy import Column, DateTime, String, func

from prepx.db_base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(320), nullable=True, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
