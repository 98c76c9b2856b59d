"""CRUD operations for the billing event audit log."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent.crud._base_system import CRUDBaseSystem
from smallbizagent.models.billing_event import BillingEvent
from smallbizagent.schemas.billing_event import BillingEventCreate


class CRUDBillingEvent(CRUDBaseSystem[BillingEvent, BillingEventCreate, BillingEventCreate]):
    """CRUD operations for billing events."""

    async def get_by_stripe_event_id(
        self, db: AsyncSession, stripe_event_id: str
    ) -> Optional[BillingEvent]:
        """Get a processed event by its Stripe event id."""
        result = await db.execute(
            select(BillingEvent).where(BillingEvent.stripe_event_id == stripe_event_id)
        )
        return result.scalar_one_or_none()


billing_event = CRUDBillingEvent(BillingEvent)
