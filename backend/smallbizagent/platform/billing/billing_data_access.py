"""Repository pattern for billing database operations.

This module handles all database interactions for billing,
providing a clean interface between the service layer and CRUD operations.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent import crud, schemas
from smallbizagent.db.unit_of_work import UnitOfWork
from smallbizagent.models import Business, SubscriptionPlan


class BillingRepository:
    """Repository for all billing-related database operations."""

    async def get_business(self, db: AsyncSession, business_id: int) -> Optional[Business]:
        """Get a business by ID."""
        return await crud.business.get(db, id=business_id)

    async def lock_business(self, db: AsyncSession, business_id: int) -> Optional[Business]:
        """Get a business and hold its row lock for the rest of the transaction."""
        return await crud.business.get_for_update(db, id=business_id)

    async def get_billing_state(
        self, db: AsyncSession, business_id: int
    ) -> Optional[schemas.BusinessBillingState]:
        """Get the cached billing state of a business."""
        business = await crud.business.get(db, id=business_id)
        return self.to_billing_state(business) if business else None

    async def get_business_by_subscription(
        self, db: AsyncSession, stripe_subscription_id: str, *, lock: bool = False
    ) -> Optional[Business]:
        """Get the business bound to a Stripe subscription.

        Returns the model directly for webhook processing.
        """
        return await crud.business.get_by_stripe_subscription(
            db, stripe_subscription_id, lock=lock
        )

    async def get_plan(self, db: AsyncSession, plan_id: int) -> Optional[SubscriptionPlan]:
        """Get a plan by ID."""
        return await crud.subscription_plan.get(db, id=plan_id)

    async def save_customer_id(
        self, db: AsyncSession, business_id: int, stripe_customer_id: str
    ) -> None:
        """Persist a freshly created Stripe customer id and commit at once."""
        await crud.business.update_billing(
            db,
            business_id=business_id,
            obj_in=schemas.BusinessBillingUpdate(stripe_customer_id=stripe_customer_id),
        )

    async def write_billing_state(
        self,
        db: AsyncSession,
        business_id: int,
        updates: schemas.BusinessBillingUpdate,
        *,
        observed_at: Optional[datetime] = None,
        expected_version: Optional[int] = None,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Write billing columns; see ``CRUDBusiness.update_billing`` for the guards."""
        return await crud.business.update_billing(
            db,
            business_id=business_id,
            obj_in=updates,
            observed_at=observed_at,
            expected_version=expected_version,
            uow=uow,
        )

    async def is_event_processed(self, db: AsyncSession, stripe_event_id: str) -> bool:
        """Whether a Stripe event id has already been recorded."""
        return await crud.billing_event.get_by_stripe_event_id(db, stripe_event_id) is not None

    async def record_event(
        self,
        db: AsyncSession,
        event_in: schemas.BillingEventCreate,
        uow: Optional[UnitOfWork] = None,
    ) -> None:
        """Record a processed Stripe event in the audit log."""
        await crud.billing_event.create(db, obj_in=event_in, uow=uow)

    @staticmethod
    def to_billing_state(business: Business) -> schemas.BusinessBillingState:
        """Convert a business model to its billing state schema."""
        return schemas.BusinessBillingState.model_validate(business, from_attributes=True)
