"""Audit log model, registered alongside the billing models."""

from prepx.platform.audit import AuditLog

__all__ = ["AuditLog"]
