"""Subscription lifecycle management: create, cancel and resume.

Every method talks to Stripe first and writes local state afterwards. Writes after
a user action are optimistic: they are skipped if the row changed while Stripe was
being called, and the webhook processor remains the authority on final state.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent import schemas
from smallbizagent.core.exceptions import InvalidStateError, NotFoundException
from smallbizagent.core.logging import ContextualLogger, logger
from smallbizagent.integrations.billing_provider import BillingProvider, ProviderSubscription
from smallbizagent.models import Business
from smallbizagent.platform.billing.billing_data_access import BillingRepository
from smallbizagent.platform.billing.plan_catalog import PlanCatalog
from smallbizagent.platform.billing.reconciliation_logic import (
    map_provider_status,
    observation_time,
    subscription_update,
)

# Statuses with no running subscription to cancel or resume.
_ENDED_STATUSES = frozenset({schemas.SubscriptionStatus.NONE, schemas.SubscriptionStatus.CANCELED})

# Stripe status of a subscription created but not yet paid for the first time
INCOMPLETE_STATUS = "incomplete"


class BillingService:
    """Main service for subscription lifecycle operations."""

    def __init__(self, provider: BillingProvider, plan_catalog: Optional[PlanCatalog] = None):
        """Initialize the service with the billing provider."""
        self.provider = provider
        self.repository = BillingRepository()
        self.plan_catalog = plan_catalog or PlanCatalog(provider)

    async def _get_business(self, db: AsyncSession, business_id: int) -> Business:
        business = await self.repository.get_business(db, business_id)
        if not business:
            raise NotFoundException(f"Business {business_id} not found")
        return business

    async def get_subscription_status(
        self, db: AsyncSession, business_id: int
    ) -> schemas.SubscriptionStatusResponse:
        """Return the cached billing state of a business and its plan."""
        business = await self._get_business(db, business_id)
        plan = None
        if business.subscription_plan_id:
            plan_model = await self.repository.get_plan(db, business.subscription_plan_id)
            plan = schemas.SubscriptionPlan.model_validate(plan_model) if plan_model else None
        return schemas.SubscriptionStatusResponse(
            state=self.repository.to_billing_state(business), plan=plan
        )

    async def create_subscription(
        self,
        db: AsyncSession,
        business_id: int,
        plan_id: int,
        log: ContextualLogger = logger,
    ) -> schemas.CreateSubscriptionResponse:
        """Start a subscription whose first payment is confirmed by the client.

        A business whose subscription is still waiting for its first payment (Stripe
        status ``incomplete``, cached as ``past_due``) may retry checkout: for the same
        plan the open subscription and its client secret are returned again, for another
        plan a new subscription replaces it and Stripe expires the abandoned one.

        Raises:
            NotFoundException: Business or plan missing, or plan inactive.
            InvalidStateError: The business already has a running subscription.
            BillingNotConfiguredError, ProviderUnavailableError, ProviderRejectedError
        """
        log = log.with_context(business_id=business_id, plan_id=plan_id)

        business = await self._get_business(db, business_id)
        state = self.repository.to_billing_state(business)

        plan = await self.plan_catalog.get_plan(db, plan_id)
        if not plan.active:
            raise NotFoundException(f"Plan {plan_id} not found")

        if state.stripe_subscription_id and state.status not in _ENDED_STATUSES:
            checkout = await self._open_checkout(state)
            if checkout is None:
                raise InvalidStateError(
                    f"Business {business_id} already has a {state.status.value} subscription"
                )
            if state.plan_id == plan_id and checkout.client_secret:
                log.info(f"Resuming checkout of incomplete subscription {checkout.id}")
                return schemas.CreateSubscriptionResponse(
                    subscription_id=checkout.id,
                    client_secret=checkout.client_secret,
                    status=state.status,
                )
            log.info(f"Replacing incomplete subscription {checkout.id} for plan {plan_id}")

        customer_id = state.stripe_customer_id
        if not customer_id:
            customer = await self.provider.create_customer(
                business_id=business_id, email=business.email, name=business.name
            )
            customer_id = customer.id
            # Committed on its own so a failure below never orphans the customer
            await self.repository.save_customer_id(db, business_id, customer_id)
            log.info(f"Created Stripe customer {customer_id}")

        price_id = await self.plan_catalog.ensure_provider_price(db, plan)

        subscription = await self.provider.create_subscription(
            customer_id=customer_id,
            price_id=price_id,
            metadata={"business_id": business_id, "plan_id": plan_id},
        )
        observed_at = observation_time()
        log.info(f"Created Stripe subscription {subscription.id} ({subscription.status})")

        updates = subscription_update(subscription, state, rewind_period_end=True)
        updates.subscription_plan_id = plan_id
        updates.subscription_start_date = subscription.start_date or observed_at

        try:
            written = await self.repository.write_billing_state(
                db, business_id, updates, observed_at=observed_at
            )
        except Exception:
            await db.rollback()
            log.error(
                f"Stripe subscription {subscription.id} was created but could not be stored; "
                "the next subscription webhook will adopt it",
                exc_info=True,
            )
            raise

        if not written:
            log.info(f"Newer webhook state already stored for subscription {subscription.id}")

        return schemas.CreateSubscriptionResponse(
            subscription_id=subscription.id,
            client_secret=subscription.client_secret,
            status=updates.subscription_status,
        )

    async def _open_checkout(
        self, state: schemas.BusinessBillingState
    ) -> Optional[ProviderSubscription]:
        """The bound subscription if it is still waiting for its first payment."""
        if state.status != schemas.SubscriptionStatus.PAST_DUE:
            return None
        subscription = await self.provider.get_subscription(state.stripe_subscription_id)
        return subscription if subscription.status == INCOMPLETE_STATUS else None

    async def cancel_subscription(
        self, db: AsyncSession, business_id: int, log: ContextualLogger = logger
    ) -> schemas.BusinessBillingState:
        """Schedule cancellation at the end of the current period."""
        return await self._set_cancel_at_period_end(db, business_id, True, log)

    async def resume_subscription(
        self, db: AsyncSession, business_id: int, log: ContextualLogger = logger
    ) -> schemas.BusinessBillingState:
        """Reverse a scheduled cancellation."""
        return await self._set_cancel_at_period_end(db, business_id, False, log)

    async def _set_cancel_at_period_end(
        self,
        db: AsyncSession,
        business_id: int,
        cancel: bool,
        log: ContextualLogger,
    ) -> schemas.BusinessBillingState:
        action = "cancel" if cancel else "resume"
        log = log.with_context(business_id=business_id, action=action)

        business = await self._get_business(db, business_id)
        state = self.repository.to_billing_state(business)
        if not state.stripe_subscription_id or state.status in _ENDED_STATUSES:
            raise NotFoundException("No active subscription found")

        subscription = await self.provider.set_cancel_at_period_end(
            state.stripe_subscription_id, cancel
        )

        if cancel:
            updates = schemas.BusinessBillingUpdate(
                subscription_status=schemas.SubscriptionStatus.CANCELING,
                cancel_at_period_end=True,
            )
        else:
            updates = schemas.BusinessBillingUpdate(
                subscription_status=map_provider_status(subscription.status, False),
                cancel_at_period_end=False,
            )
            if subscription.current_period_end is not None:
                updates.current_period_end = subscription.current_period_end

        written = await self.repository.write_billing_state(
            db, business_id, updates, expected_version=state.billing_version
        )
        if written:
            log.info(f"Subscription {state.stripe_subscription_id}: {action} requested")
        else:
            log.info(
                f"Subscription {state.stripe_subscription_id}: {action} requested, "
                "local state changed meanwhile, leaving it to reconciliation"
            )

        return await self.repository.get_billing_state(db, business_id)
