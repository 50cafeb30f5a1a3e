"""
Resolve billing provider identifiers to internal user ids.

The app sets the provider's app_user_id to the auth user id (a UUID) when
the user is signed in; older purchases may carry the account email instead.
"""

import logging
import re
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from prepx.models.user import User

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_uuid(value: str) -> bool:
    return bool(UUID_PATTERN.match(value or ""))


class UserDirectory:
    """Looks up users by id or email within the caller's session."""

    def __init__(self, session: Session):
        self.session = session

    def resolve(self, candidates: Iterable[str]) -> Optional[str]:
        """
        Return the first candidate that maps to a user.

        UUID-shaped candidates are trusted as user ids; anything else is
        treated as an email and matched case-insensitively.
        """
        for candidate in candidates:
            if is_uuid(candidate):
                return candidate.lower()
            user_id = self.find_by_email(candidate)
            if user_id:
                return user_id
        return None

    def find_by_email(self, email: str) -> Optional[str]:
        if "@" not in email:
            return None
        return self.session.execute(
            select(User.id).where(func.lower(User.email) == email.strip().lower())
        ).scalars().first()
