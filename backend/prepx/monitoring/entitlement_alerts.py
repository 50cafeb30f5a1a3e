"""
Alerts for entitlement check failures and repeated deny events.
"""

import logging
import threading
import time

logger = logging.getLogger(__name__)

# In-memory sliding window of deny timestamps per user (per process)
_deny_counts: dict[str, list] = {}
_deny_lock = threading.Lock()
DENY_THRESHOLD_PER_MIN = 10
DENY_WINDOW_SECONDS = 60


def emit_check_failure(user_id: str, feature_slug: str, error_message: str) -> None:
    """Emit a support alert when the gate had to fail closed."""
    logger.error(
        "Entitlement check failure",
        extra={"user_id": user_id, "feature_slug": feature_slug, "error": error_message},
    )


def _record_deny(user_id: str) -> int:
    now = time.time()
    cutoff = now - DENY_WINDOW_SECONDS
    with _deny_lock:
        # Drop users whose window has emptied
        for key in list(_deny_counts):
            window = [t for t in _deny_counts[key] if t > cutoff]
            if window:
                _deny_counts[key] = window
            else:
                del _deny_counts[key]
        window = _deny_counts.setdefault(user_id, [])
        window.append(now)
        return len(window)


def record_deny_and_alert(user_id: str, feature_slug: str, reason: str) -> None:
    """Record a deny event; alert if over threshold per minute."""
    count = _record_deny(user_id)
    if count >= DENY_THRESHOLD_PER_MIN:
        emit_deny_alert(user_id, feature_slug, reason, count)


def emit_deny_alert(user_id: str, feature_slug: str, reason: str, count: int) -> None:
    """Alert on repeated deny events (>N/min)."""
    logger.warning(
        "Repeated entitlement deny events",
        extra={
            "user_id": user_id,
            "feature_slug": feature_slug,
            "reason": reason,
            "count_per_min": count,
        },
    )


def reset_deny_counts() -> None:
    with _deny_lock:
        _deny_counts.clear()
