"""Subscription summary for the signed-in user."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from prepx.api.dependencies.services import get_current_principal
from prepx.billing.subscriptions import get_subscription_summary
from prepx.database.session import get_db_session
from prepx.platform.auth import Principal

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/me")
def get_my_subscription(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db_session),
) -> dict:
    """Current plan, status and remaining days. Read-only."""
    return get_subscription_summary(db, principal.user_id).to_dict()
