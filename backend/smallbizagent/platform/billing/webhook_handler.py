"""Webhook processor for Stripe billing events.

This module applies verified Stripe webhook events to the cached billing state of
businesses and to the overage ledger. Stripe delivers events at least once and in
no particular order, so every write here is idempotent and guarded:

- subscription state is only written when the observation is not older than the
  last one applied to the business (compare-and-set on ``billing_event_at``),
  under the business row lock;
- overage charges only move out of ``pending``, never between terminal states;
- each event id is recorded in ``billing_events`` in the same transaction, and a
  redelivered event id is acknowledged without reprocessing.
"""

from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent import schemas
from smallbizagent.core.logging import ContextualLogger, logger
from smallbizagent.db.unit_of_work import UnitOfWork
from smallbizagent.integrations.billing_provider import (
    BillingProvider,
    ProviderEvent,
    ProviderInvoice,
    ProviderSubscription,
)
from smallbizagent.models import Business
from smallbizagent.platform.billing.billing_data_access import BillingRepository
from smallbizagent.platform.billing.overage_ledger import OverageLedger
from smallbizagent.platform.billing.reconciliation_logic import (
    can_adopt,
    deleted_subscription_update,
    is_fresh,
    observation_time,
    overage_failure_reason,
    subscription_update,
)

Outcome = schemas.BillingEventOutcome
HandlerResult = tuple[Optional[int], Outcome]
Handler = Callable[[ProviderEvent, UnitOfWork, ContextualLogger], Awaitable[HandlerResult]]


def _metadata_business_id(metadata: dict[str, str]) -> Optional[int]:
    try:
        return int(metadata.get("business_id", ""))
    except ValueError:
        return None


class BillingWebhookProcessor:
    """Process Stripe webhook events for billing."""

    def __init__(
        self,
        db: AsyncSession,
        provider: BillingProvider,
        ledger: Optional[OverageLedger] = None,
    ):
        """Initialize webhook processor."""
        self.db = db
        self.provider = provider
        self.repository = BillingRepository()
        self.ledger = ledger or OverageLedger()

        # Event handler mapping
        self.handlers: dict[str, Handler] = {
            "customer.subscription.created": self._handle_subscription_changed,
            "customer.subscription.updated": self._handle_subscription_changed,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "invoice.payment_succeeded": self._handle_payment_succeeded,
            "invoice.paid": self._handle_payment_succeeded,
            "invoice.payment_failed": self._handle_payment_failed,
        }

    def _create_context_logger(self, event: ProviderEvent) -> ContextualLogger:
        """Create contextual logger with event context."""
        return logger.with_context(
            auth_method="stripe_webhook",
            event_type=event.type,
            stripe_event_id=event.id,
        )

    async def process_event(self, event: ProviderEvent) -> Optional[Outcome]:
        """Process a verified Stripe webhook event.

        Returns:
            The outcome recorded for the event, or None when the event id had
            already been processed.

        Raises:
            Exception: Any failure, so the endpoint answers 500 and Stripe redelivers.
        """
        log = self._create_context_logger(event)

        if await self.repository.is_event_processed(self.db, event.id):
            log.info(f"Webhook event {event.id} already processed, acknowledging")
            return None

        handler = self.handlers.get(event.type)
        try:
            async with UnitOfWork(self.db) as uow:
                if handler:
                    log.info(f"Processing webhook event: {event.type}")
                    business_id, outcome = await handler(event, uow, log)
                else:
                    log.info(f"Unhandled webhook event type: {event.type}")
                    business_id, outcome = None, Outcome.IGNORED

                await self.repository.record_event(
                    self.db,
                    schemas.BillingEventCreate(
                        stripe_event_id=event.id,
                        event_type=event.type,
                        outcome=outcome,
                        business_id=business_id,
                        event_created_at=event.created,
                        event_data=event.data_object,
                    ),
                    uow=uow,
                )
        except IntegrityError:
            if await self.repository.is_event_processed(self.db, event.id):
                log.info(f"Webhook event {event.id} processed by a concurrent delivery")
                return None
            log.error(f"Error handling {event.type}", exc_info=True)
            raise
        except Exception as e:
            log.error(f"Error handling {event.type}: {e}", exc_info=True)
            raise

        log.info(f"Webhook event {event.type} {outcome.value}")
        return outcome

    # Subscription state

    async def _find_business(
        self,
        subscription: ProviderSubscription,
        log: ContextualLogger,
        *,
        adopt: bool,
    ) -> Optional[Business]:
        """Find and lock the business a subscription belongs to.

        Falls back to the ``business_id`` metadata set at creation, which binds a
        subscription whose local write failed after it was created.
        """
        business = await self.repository.get_business_by_subscription(
            self.db, subscription.id, lock=True
        )
        if business or not adopt:
            return business

        business_id = _metadata_business_id(subscription.metadata)
        if business_id is None:
            return None

        business = await self.repository.lock_business(self.db, business_id)
        if business and can_adopt(self.repository.to_billing_state(business), subscription):
            log.warning(f"Adopting subscription {subscription.id} for business {business_id}")
            return business
        return None

    async def _apply_subscription(
        self,
        subscription: ProviderSubscription,
        observed_at: datetime,
        uow: UnitOfWork,
        log: ContextualLogger,
    ) -> HandlerResult:
        business = await self._find_business(subscription, log, adopt=True)
        if not business:
            log.info(f"No business for subscription {subscription.id}, ignoring")
            return None, Outcome.UNMATCHED

        log = log.with_context(business_id=business.id)
        state = self.repository.to_billing_state(business)
        if not is_fresh(observed_at, state.billing_event_at):
            log.info(
                f"Discarding stale state of subscription {subscription.id} "
                f"observed {observed_at}, last applied {state.billing_event_at}"
            )
            return business.id, Outcome.STALE

        updates = subscription_update(subscription, state)
        if state.stripe_subscription_id != subscription.id:
            plan_id = subscription.metadata.get("plan_id")
            if plan_id and plan_id.isdigit():
                updates.subscription_plan_id = int(plan_id)
            updates.subscription_start_date = subscription.start_date or observed_at

        written = await self.repository.write_billing_state(
            self.db, business.id, updates, observed_at=observed_at, uow=uow
        )
        if not written:
            return business.id, Outcome.STALE

        log.info(
            f"Subscription {subscription.id} is {updates.subscription_status.value}, "
            f"period ends {updates.current_period_end}"
        )
        return business.id, Outcome.APPLIED

    async def _refetch_and_apply(
        self, subscription_id: str, uow: UnitOfWork, log: ContextualLogger
    ) -> HandlerResult:
        """Apply the current subscription state, read from Stripe.

        The observation time is taken before the request: the returned state
        reflects at least everything that happened up to that moment.
        """
        observed_at = observation_time()
        subscription = await self.provider.get_subscription(subscription_id)
        return await self._apply_subscription(subscription, observed_at, uow, log)

    async def _handle_subscription_changed(
        self, event: ProviderEvent, uow: UnitOfWork, log: ContextualLogger
    ) -> HandlerResult:
        """Handle subscription creation and updates."""
        subscription = ProviderSubscription.from_stripe(event.data_object)
        return await self._apply_subscription(subscription, event.created, uow, log)

    async def _handle_subscription_deleted(
        self, event: ProviderEvent, uow: UnitOfWork, log: ContextualLogger
    ) -> HandlerResult:
        """Handle a subscription that has ended."""
        subscription = ProviderSubscription.from_stripe(event.data_object)
        business = await self._find_business(subscription, log, adopt=False)
        if not business:
            log.info(f"No business for deleted subscription {subscription.id}, ignoring")
            return None, Outcome.UNMATCHED

        state = self.repository.to_billing_state(business)
        if not is_fresh(event.created, state.billing_event_at):
            log.info(f"Discarding stale deletion of subscription {subscription.id}")
            return business.id, Outcome.STALE

        written = await self.repository.write_billing_state(
            self.db,
            business.id,
            deleted_subscription_update(),
            observed_at=event.created,
            uow=uow,
        )
        if written:
            log.with_context(business_id=business.id).info(
                f"Subscription {subscription.id} canceled"
            )
        return business.id, Outcome.APPLIED if written else Outcome.STALE

    # Invoices

    async def _handle_payment_succeeded(
        self, event: ProviderEvent, uow: UnitOfWork, log: ContextualLogger
    ) -> HandlerResult:
        """Handle a paid invoice: settle an overage charge or resync the subscription."""
        invoice = ProviderInvoice.from_stripe(event.data_object)

        if invoice.is_overage:
            settled = await self.ledger.settle_paid(
                self.db, invoice.id, paid_at=event.created, uow=uow, log=log
            )
            business_id = await self.ledger.get_charge_business_id(self.db, invoice.id)
            return business_id, Outcome.APPLIED if settled else Outcome.IGNORED

        if invoice.subscription_id:
            return await self._refetch_and_apply(invoice.subscription_id, uow, log)

        log.info(f"Invoice {invoice.id} is not linked to a subscription, ignoring")
        return None, Outcome.IGNORED

    async def _handle_payment_failed(
        self, event: ProviderEvent, uow: UnitOfWork, log: ContextualLogger
    ) -> HandlerResult:
        """Handle a failed invoice payment: fail an overage charge or resync the subscription."""
        invoice = ProviderInvoice.from_stripe(event.data_object)

        if invoice.is_overage:
            failure_message = invoice.failure_message
            if failure_message is None and invoice.payment_intent_id:
                failure_message = await self.provider.get_payment_failure_message(
                    invoice.payment_intent_id
                )
            reason = overage_failure_reason(failure_message, invoice.attempt_count)
            settled = await self.ledger.settle_failed(
                self.db, invoice.id, reason, uow=uow, log=log
            )
            business_id = await self.ledger.get_charge_business_id(self.db, invoice.id)
            return business_id, Outcome.APPLIED if settled else Outcome.IGNORED

        if invoice.subscription_id:
            return await self._refetch_and_apply(invoice.subscription_id, uow, log)

        log.info(f"Invoice {invoice.id} is not linked to a subscription, ignoring")
        return None, Outcome.IGNORED
