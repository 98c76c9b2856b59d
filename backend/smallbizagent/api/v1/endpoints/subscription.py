"""API endpoints for subscription billing.

This module provides the HTTP interface for plans, subscriptions, usage and the
Stripe webhook, delegating all business logic to the billing platform.
"""

from typing import Optional

from fastapi import Depends, Header, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent import schemas
from smallbizagent.api import deps
from smallbizagent.api.context import ApiContext
from smallbizagent.api.router import TrailingSlashRouter
from smallbizagent.core.exceptions import (
    BillingNotConfiguredError,
    SignatureInvalidError,
)
from smallbizagent.core.logging import logger
from smallbizagent.integrations.billing_provider import BillingProvider
from smallbizagent.platform.billing.billing_service import BillingService
from smallbizagent.platform.billing.overage_ledger import OverageLedger
from smallbizagent.platform.billing.plan_catalog import PlanCatalog
from smallbizagent.platform.billing.webhook_handler import BillingWebhookProcessor

router = TrailingSlashRouter()


# Plans


@router.get("/plans", response_model=list[schemas.SubscriptionPlan])
async def list_plans(
    db: AsyncSession = Depends(deps.get_db),
    catalog: PlanCatalog = Depends(deps.get_plan_catalog),
) -> list[schemas.SubscriptionPlan]:
    """List the active subscription plans in display order."""
    return await catalog.list_active_plans(db)


@router.post("/plans", response_model=schemas.SubscriptionPlan)
async def create_plan(
    plan_in: schemas.SubscriptionPlanCreate,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_admin_context),
    catalog: PlanCatalog = Depends(deps.get_plan_catalog),
) -> schemas.SubscriptionPlan:
    """Create a plan and its Stripe product and price. Administrators only."""
    return await catalog.create_plan(db, plan_in, log=ctx.logger)


@router.patch("/plans/{plan_id}", response_model=schemas.SubscriptionPlan)
async def update_plan(
    plan_id: int,
    plan_patch: schemas.SubscriptionPlanUpdate,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_admin_context),
    catalog: PlanCatalog = Depends(deps.get_plan_catalog),
) -> schemas.SubscriptionPlan:
    """Update a plan. Administrators only.

    Name, price and interval are frozen while a running subscription uses the plan.
    """
    return await catalog.update_plan(db, plan_id, plan_patch, log=ctx.logger)


# Subscriptions


@router.get("/status/{business_id}", response_model=schemas.SubscriptionStatusResponse)
async def get_subscription_status(
    business_id: int,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    billing_service: BillingService = Depends(deps.get_billing_service),
) -> schemas.SubscriptionStatusResponse:
    """Get the cached subscription state of a business and its plan."""
    return await billing_service.get_subscription_status(db, business_id)


@router.post("/create-subscription", response_model=schemas.CreateSubscriptionResponse)
async def create_subscription(
    request: schemas.CreateSubscriptionRequest,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    billing_service: BillingService = Depends(deps.get_billing_service),
) -> schemas.CreateSubscriptionResponse:
    """Start a subscription to a plan.

    Returns the Stripe subscription id and the client secret the frontend uses to
    confirm the first payment.
    """
    return await billing_service.create_subscription(
        db, request.business_id, request.plan_id, log=ctx.logger
    )


@router.post("/cancel/{business_id}", response_model=schemas.BusinessBillingState)
async def cancel_subscription(
    business_id: int,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    billing_service: BillingService = Depends(deps.get_billing_service),
) -> schemas.BusinessBillingState:
    """Cancel the subscription at the end of the current period."""
    return await billing_service.cancel_subscription(db, business_id, log=ctx.logger)


@router.post("/resume/{business_id}", response_model=schemas.BusinessBillingState)
async def resume_subscription(
    business_id: int,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    billing_service: BillingService = Depends(deps.get_billing_service),
) -> schemas.BusinessBillingState:
    """Undo a scheduled cancellation."""
    return await billing_service.resume_subscription(db, business_id, log=ctx.logger)


# Usage and overage


@router.get("/usage/{business_id}", response_model=schemas.UsageInfo)
async def get_usage(
    business_id: int,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    ledger: OverageLedger = Depends(deps.get_overage_ledger),
) -> schemas.UsageInfo:
    """Get current-period call minute usage. Available without billing configured."""
    return await ledger.get_usage(db, business_id)


@router.get("/overage-history/{business_id}", response_model=schemas.OverageHistory)
async def get_overage_history(
    business_id: int,
    limit: Optional[int] = None,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    ledger: OverageLedger = Depends(deps.get_overage_ledger),
) -> schemas.OverageHistory:
    """List overage charges of a business, newest period first."""
    charges = await ledger.get_overage_history(db, business_id, limit=limit)
    return schemas.OverageHistory(
        charges=[schemas.OverageCharge.model_validate(charge) for charge in charges]
    )


# Webhook


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(deps.get_db),
    provider: BillingProvider = Depends(deps.get_billing_provider),
    ledger: OverageLedger = Depends(deps.get_overage_ledger),
) -> Response:
    """Handle Stripe webhook events.

    Answers 400 when the signature does not verify or billing is not configured,
    500 when processing fails so Stripe redelivers the event, and 200 otherwise,
    including for event types that are not handled and for redelivered events.
    """
    payload = await request.body()

    try:
        event = provider.verify_webhook(payload, stripe_signature)
    except (SignatureInvalidError, BillingNotConfiguredError) as e:
        logger.warning(f"Rejected webhook: {e}")
        return Response(status_code=400)

    try:
        processor = BillingWebhookProcessor(db, provider, ledger)
        await processor.process_event(event)
    except Exception:
        # Logged by the processor
        return Response(status_code=500)

    return Response(
        content='{"received": true}', media_type="application/json", status_code=200
    )
