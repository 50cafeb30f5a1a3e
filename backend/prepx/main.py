"""
Application factory.

    uvicorn --factory prepx.main:create_app

Services are built once and stored on ``app.state``; route modules read them
through prepx.api.dependencies.services.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.orm import sessionmaker

from prepx import __version__
from prepx.api.routes import entitlements, health, subscriptions, webhooks_billing
from prepx.billing.reconciler import SubscriptionReconciler
from prepx.config.settings import AppConfig
from prepx.database.session import create_db_engine, create_session_factory, init_schema
from prepx.entitlements.gate import EntitlementGate
from prepx.entitlements.store import SqlEntitlementStore
from prepx.platform.auth import TokenVerifier
from prepx.platform.errors import AppError, ErrorHandlerMiddleware, app_error_handler

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    session_factory: Optional[sessionmaker] = None,
    token_verifier: Optional[TokenVerifier] = None,
) -> FastAPI:
    """Build the API application with its gate, reconciler and verifier."""
    config = config or AppConfig.from_env()
    logging.getLogger("prepx").setLevel(config.log_level)

    if session_factory is None:
        engine = create_db_engine(config.database_url)
        if config.database_url.startswith("sqlite"):
            init_schema(engine)
        session_factory = create_session_factory(engine)

    app = FastAPI(title="PrepX Billing & Entitlements", version=__version__)

    app.state.config = config
    app.state.session_factory = session_factory
    app.state.entitlement_gate = EntitlementGate(
        SqlEntitlementStore(session_factory, free_daily_limit=config.free_tier_daily_limit)
    )
    app.state.reconciler = SubscriptionReconciler(
        session_factory, free_daily_limit=config.free_tier_daily_limit
    )
    app.state.token_verifier = token_verifier or TokenVerifier.from_config(config)

    app.add_middleware(ErrorHandlerMiddleware)
    app.add_exception_handler(AppError, app_error_handler)

    app.include_router(health.router)
    app.include_router(entitlements.router)
    app.include_router(webhooks_billing.router)
    app.include_router(subscriptions.router)

    logger.info("Application created", extra={"version": __version__})
    return app

