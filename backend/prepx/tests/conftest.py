"""
Shared pytest fixtures.

Every test gets a fresh in-memory SQLite database (StaticPool, so all
sessions see the same connection) and a FastAPI app wired to it.
"""

import json
import time
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from prepx.billing.signature import compute_signature
from prepx.config.settings import AppConfig
from prepx.database.session import create_db_engine, create_session_factory, init_schema
from prepx.main import create_app
from prepx.models.entitlement import Entitlement
from prepx.models.plan import Plan
from prepx.models.subscription import Subscription
from prepx.models.user import User
from prepx.monitoring.entitlement_alerts import reset_deny_counts

JWT_SECRET = "test-jwt-secret-at-least-thirty-two-bytes-long"
WEBHOOK_SECRET = "test_webhook_secret"
USER_ID = "7d9f3c2a-1b4e-4c8d-9a6f-2e5b7c1d0f3a"


def utcnow():
    return datetime.now(timezone.utc)


def to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def _reset_deny_window():
    reset_deny_counts()
    yield
    reset_deny_counts()


# ============================================================================
# DATA FACTORIES
# ============================================================================

@pytest.fixture
def make_user(db_session):
    def _make(email=None, user_id=None):
        user = User(id=user_id or str(uuid.uuid4()), email=email)
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def plans(db_session):
    """Seed the four purchasable plans, keyed by slug."""
    seeded = {}
    for slug, name, price, days in [
        ("monthly", "Monthly", 599, 30),
        ("quarterly", "Quarterly", 1499, 90),
        ("half-yearly", "Half Yearly", 2699, 180),
        ("annual", "Annual", 4999, 365),
    ]:
        plan = Plan(id=str(uuid.uuid4()), slug=slug, name=name, price_inr=price, duration_days=days)
        db_session.add(plan)
        seeded[slug] = plan
    db_session.commit()
    return seeded


@pytest.fixture
def make_subscription(db_session):
    def _make(user_id=USER_ID, status="active", expires_in=timedelta(days=30), **fields):
        now = utcnow()
        expires_at = now + expires_in if expires_in is not None else None
        values = {
            "subscription_started_at": now - timedelta(days=1),
            "subscription_expires_at": expires_at,
        }
        if status == "trial":
            values["trial_started_at"] = now - timedelta(days=1)
            values["trial_expires_at"] = expires_at
        values.update(fields)
        subscription = Subscription(id=str(uuid.uuid4()), user_id=user_id, status=status, **values)
        db_session.add(subscription)
        db_session.commit()
        return subscription
    return _make


@pytest.fixture
def make_entitlement(db_session):
    def _make(feature_slug, user_id=USER_ID, limit_type="daily", limit_value=3, usage_count=0,
              last_reset_at=None):
        entitlement = Entitlement(
            id=str(uuid.uuid4()),
            user_id=user_id,
            feature_slug=feature_slug,
            limit_type=limit_type,
            limit_value=limit_value,
            usage_count=usage_count,
            last_reset_at=last_reset_at or utcnow(),
        )
        db_session.add(entitlement)
        db_session.commit()
        return entitlement
    return _make


@pytest.fixture
def make_event():
    """Build a webhook envelope dict."""
    def _make(event_type, app_user_id=USER_ID, **overrides):
        now = utcnow()
        event = {
            "type": event_type,
            "id": str(uuid.uuid4()),
            "app_user_id": app_user_id,
            "original_app_user_id": app_user_id,
            "aliases": [],
            "product_id": "prepx_monthly",
            "entitlement_ids": ["pro"],
            "period_type": "NORMAL",
            "purchased_at_ms": to_ms(now - timedelta(minutes=5)),
            "expiration_at_ms": to_ms(now + timedelta(days=30)),
            "event_timestamp_ms": to_ms(now),
            "store": "PLAY_STORE",
            "environment": "SANDBOX",
            "transaction_id": "GPA.1234-5678",
            "original_transaction_id": "GPA.1234-0000",
            "price": 599,
            "currency": "INR",
        }
        event.update(overrides)
        return {"api_version": "1.0", "event": event}
    return _make


def signed_headers(body: bytes, secret: str = WEBHOOK_SECRET) -> dict:
    return {
        "Content-Type": "application/json",
        "x-provider-signature": compute_signature(body, secret),
    }


def encode(payload: dict) -> bytes:
    return json.dumps(payload).encode("utf-8")


# ============================================================================
# AUTH
# ============================================================================

def make_token(user_id=USER_ID, email="aspirant@example.com", expires_in=3600,
               secret=JWT_SECRET, audience="authenticated"):
    claims = {
        "sub": user_id,
        "email": email,
        "aud": audience,
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user_id=USER_ID) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


# ============================================================================
# APP
# ============================================================================

@pytest.fixture
def config():
    return AppConfig(
        database_url="sqlite://",
        auth_jwt_secret=JWT_SECRET,
        billing_webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def app(config, session_factory):
    return create_app(config=config, session_factory=session_factory)


@pytest.fixture
def client(app):
    return TestClient(app)
