"""Shared utilities."""

from prepx.utils.clock import ensure_utc, from_epoch_ms, utc_now

__all__ = ["ensure_utc", "from_epoch_ms", "utc_now"]
