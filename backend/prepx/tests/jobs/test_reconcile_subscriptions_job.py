"""Tests for the lapsed-subscription sweep job."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import USER_ID, utcnow
from prepx.billing.reconciler import SubscriptionReconciler
from prepx.config.plans import PRO_FEATURES
from prepx.jobs.reconcile_subscriptions import SubscriptionReconciliationJob
from prepx.models.entitlement import Entitlement
from prepx.models.subscription import Subscription
from prepx.platform.audit import AuditLog

OTHER_USER = "0b8e6a1f-5c4d-4e3b-8a2f-9d7c6b5a4e3f"


@pytest.fixture
def reconciler(session_factory):
    return SubscriptionReconciler(session_factory)


@pytest.fixture
def job(session_factory, reconciler):
    return SubscriptionReconciliationJob(session_factory, reconciler)


def status_of(session_factory, user_id=USER_ID):
    with session_factory() as session:
        return session.execute(
            select(Subscription.status).where(Subscription.user_id == user_id)
        ).scalar_one()


def rows_of(session_factory, user_id=USER_ID):
    with session_factory() as session:
        return {
            row.feature_slug: row
            for row in session.execute(
                select(Entitlement).where(Entitlement.user_id == user_id)
            ).scalars()
        }


class TestExpireLapsed:

    @pytest.mark.parametrize("status", ["active", "trial", "canceled", "paused"])
    def test_lapsed_subscription_is_expired_and_revoked(self, job, session_factory, make_subscription, status):
        make_subscription(status=status, expires_in=timedelta(hours=-1))

        results = job.run()

        assert results["subscriptions_expired"] == 1
        assert results["errors"] == []
        assert status_of(session_factory) == "expired"
        rows = rows_of(session_factory)
        assert set(rows) == set(PRO_FEATURES)
        assert all(row.limit_type == "daily" and row.limit_value == 3 for row in rows.values())

    def test_current_subscription_untouched(self, job, session_factory, make_subscription, reconciler):
        make_subscription(status="active", expires_in=timedelta(days=3))
        reconciler.regrant_pro_entitlements(USER_ID)

        results = job.run()

        assert results["subscriptions_expired"] == 0
        assert results["entitlements_regranted"] == 0
        assert status_of(session_factory) == "active"

    def test_already_expired_is_skipped(self, job, make_subscription):
        make_subscription(status="expired", expires_in=timedelta(days=-10))

        results = job.run()

        assert results["subscriptions_checked"] == 0
        assert results["subscriptions_expired"] == 0

    def test_expiry_is_audited(self, job, session_factory, make_subscription):
        make_subscription(status="active", expires_in=timedelta(minutes=-5))

        job.run()

        with session_factory() as session:
            actions = session.execute(select(AuditLog.action, AuditLog.source)).all()
        assert ("subscription.expired_by_sweep", "job") in actions

    def test_expire_lapsed_refuses_current_subscription(self, reconciler, make_subscription):
        make_subscription(status="active", expires_in=timedelta(days=1))

        assert reconciler.expire_lapsed(USER_ID, utcnow()) is False


class TestDriftRepair:

    def test_missing_pro_rows_are_regranted(self, job, session_factory, make_subscription, make_entitlement):
        make_subscription(status="active", expires_in=timedelta(days=3))
        make_entitlement("notes_generation", usage_count=3)

        results = job.run()

        assert results["entitlements_regranted"] == 1
        rows = rows_of(session_factory)
        assert set(rows) == set(PRO_FEATURES)
        assert all(row.limit_type == "unlimited" for row in rows.values())

    def test_canceled_subscription_is_not_regranted(self, job, make_subscription):
        make_subscription(status="canceled", expires_in=timedelta(days=3))

        results = job.run()

        assert results["entitlements_regranted"] == 0


class TestErrorIsolation:

    def test_one_failure_does_not_stop_the_sweep(self, job, session_factory, make_subscription, reconciler, monkeypatch):
        make_subscription(user_id=USER_ID, status="active", expires_in=timedelta(hours=-1))
        make_subscription(user_id=OTHER_USER, status="active", expires_in=timedelta(hours=-1))

        original = reconciler.expire_lapsed

        def flaky(user_id, now=None):
            if user_id == USER_ID:
                raise RuntimeError("lock timeout")
            return original(user_id, now)

        monkeypatch.setattr(reconciler, "expire_lapsed", flaky)

        results = job.run()

        assert results["subscriptions_expired"] == 1
        assert len(results["errors"]) == 1
        assert status_of(session_factory, OTHER_USER) == "expired"
        assert status_of(session_factory, USER_ID) == "active"
