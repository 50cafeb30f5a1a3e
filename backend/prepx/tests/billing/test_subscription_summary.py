"""Tests for the read-only subscription summary."""

from datetime import timedelta

from conftest import USER_ID, utcnow
from prepx.billing.subscriptions import get_subscription_summary


class TestSubscriptionSummary:

    def test_no_subscription(self, db_session):
        summary = get_subscription_summary(db_session, USER_ID)

        assert summary.to_dict() == {
            "status": "none",
            "plan_slug": None,
            "is_trial_active": False,
            "is_subscription_active": False,
            "days_remaining": None,
            "auto_renew": False,
            "expires_at": None,
        }

    def test_active_subscription_with_plan(self, db_session, make_subscription, plans):
        make_subscription(
            status="active",
            expires_in=timedelta(days=10, hours=1),
            plan_id=plans["quarterly"].id,
            auto_renew=True,
        )

        summary = get_subscription_summary(db_session, USER_ID)

        assert summary.status == "active"
        assert summary.plan_slug == "quarterly"
        assert summary.is_subscription_active is True
        assert summary.is_trial_active is False
        assert summary.days_remaining == 11
        assert summary.auto_renew is True

    def test_trial_subscription(self, db_session, make_subscription):
        make_subscription(status="trial", expires_in=timedelta(days=2))

        summary = get_subscription_summary(db_session, USER_ID)

        assert summary.is_trial_active is True
        assert summary.is_subscription_active is True

    def test_lapsed_subscription_reports_zero_days(self, db_session, make_subscription):
        make_subscription(status="canceled", expires_in=timedelta(days=-2), auto_renew=False)

        summary = get_subscription_summary(db_session, USER_ID, now=utcnow())

        assert summary.status == "canceled"
        assert summary.is_subscription_active is False
        assert summary.days_remaining == 0
