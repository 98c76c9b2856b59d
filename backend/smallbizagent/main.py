"""Main module of the FastAPI application.

This module sets up the FastAPI application, wires the billing provider, and
registers the middleware to log incoming requests and unhandled exceptions.
"""

import os
import subprocess
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from smallbizagent.api.middleware import (
    add_request_id,
    exception_logging_middleware,
    log_requests,
    smallbizagent_exception_handler,
    validation_exception_handler,
)
from smallbizagent.api.router import TrailingSlashRouter
from smallbizagent.api.v1.api import api_router
from smallbizagent.core.config import BillingConfig, Settings, settings
from smallbizagent.core.exceptions import SmallBizAgentException
from smallbizagent.core.logging import logger
from smallbizagent.db.session import AsyncSessionLocal
from smallbizagent.integrations.billing_provider import BillingProvider, DisabledBillingProvider
from smallbizagent.integrations.stripe_client import StripeClient
from smallbizagent.platform.billing.plan_catalog import seed_default_plans
from smallbizagent.platform.billing.usage_meter import CallLogUsageMeter, UsageMeter

CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]


def build_billing_provider(app_settings: Settings) -> BillingProvider:
    """Choose the billing provider once, from the configured credentials."""
    config = BillingConfig.from_settings(app_settings)
    if config is None:
        logger.warning("Stripe credentials not set, billing endpoints will answer 503")
        return DisabledBillingProvider()
    logger.info(f"Billing enabled with Stripe API version {config.api_version}")
    return StripeClient(config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events.

    Runs alembic migrations and seeds the default subscription plans.
    """
    if settings.RUN_ALEMBIC_MIGRATIONS:
        logger.info("Running alembic migrations...")
        env = os.environ.copy()
        backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        env["PYTHONPATH"] = backend_dir
        subprocess.run(
            ["alembic", "upgrade", "head"],
            check=True,
            cwd=backend_dir,
            env=env,
        )
    if settings.SEED_SUBSCRIPTION_PLANS:
        async with AsyncSessionLocal() as db:
            await seed_default_plans(db)

    yield


def create_app(
    billing_provider: Optional[BillingProvider] = None,
    usage_meter: Optional[UsageMeter] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        billing_provider: Provider to use; chosen from the settings when omitted.
        usage_meter: Source of usage counters; the call log when omitted.
    """
    # Our custom router handles trailing slashes; FastAPI's redirects stay off
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url="/openapi.json",
        lifespan=lifespan,
        router=TrailingSlashRouter(),
        redirect_slashes=False,
    )

    app.state.billing_provider = billing_provider or build_billing_provider(settings)
    app.state.usage_meter = usage_meter or CallLogUsageMeter()

    app.include_router(api_router)

    # Register middleware directly
    app.middleware("http")(add_request_id)
    app.middleware("http")(log_requests)
    app.middleware("http")(exception_logging_middleware)

    # Register exception handlers
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(ValidationError)(validation_exception_handler)
    app.exception_handler(SmallBizAgentException)(smallbizagent_exception_handler)

    origins = CORS_ORIGINS + settings.cors_origins
    if settings.ENVIRONMENT == "local" and settings.cors_origins:
        origins = ["*"]  # Allow all origins in local environment
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app


app = create_app()
