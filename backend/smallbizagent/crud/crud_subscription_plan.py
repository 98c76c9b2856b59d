"""CRUD operations for subscription plans."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent.crud._base_system import CRUDBaseSystem
from smallbizagent.models.business import Business
from smallbizagent.models.subscription_plan import SubscriptionPlan
from smallbizagent.schemas.business_billing import LIVE_STATUSES
from smallbizagent.schemas.subscription_plan import SubscriptionPlanCreate, SubscriptionPlanUpdate


class CRUDSubscriptionPlan(
    CRUDBaseSystem[SubscriptionPlan, SubscriptionPlanCreate, SubscriptionPlanUpdate]
):
    """CRUD operations for the plan catalog."""

    async def get_active(self, db: AsyncSession) -> list[SubscriptionPlan]:
        """Get active plans in display order."""
        result = await db.execute(
            select(SubscriptionPlan)
            .where(SubscriptionPlan.active.is_(True))
            .order_by(SubscriptionPlan.sort_order, SubscriptionPlan.id)
        )
        return list(result.scalars().all())

    async def count(self, db: AsyncSession) -> int:
        """Count all plans, active or not."""
        result = await db.execute(select(func.count()).select_from(SubscriptionPlan))
        return result.scalar_one()

    async def count_live_subscriptions(self, db: AsyncSession, plan_id: int) -> int:
        """Count businesses whose running subscription references the plan."""
        result = await db.execute(
            select(func.count())
            .select_from(Business)
            .where(
                Business.subscription_plan_id == plan_id,
                Business.subscription_status.in_([status.value for status in LIVE_STATUSES]),
            )
        )
        return result.scalar_one()


subscription_plan = CRUDSubscriptionPlan(SubscriptionPlan)
