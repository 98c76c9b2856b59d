"""Plan catalog: the administrable list of plans and their Stripe prices."""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent import crud, schemas
from smallbizagent.core.exceptions import ImmutableFieldError, NotFoundException
from smallbizagent.core.logging import ContextualLogger, logger
from smallbizagent.integrations.billing_provider import BillingProvider, ProviderPrice
from smallbizagent.models import SubscriptionPlan

# Fields that may change while a running subscription references the plan.
MUTABLE_WHILE_SUBSCRIBED = frozenset(
    {
        "active",
        "sort_order",
        "features",
        "plan_tier",
        "max_call_minutes",
        "overage_rate_per_minute",
        "max_staff",
    }
)

# Fields that feed into the Stripe product or price.
PRICE_FIELDS = frozenset({"name", "price", "interval"})

# Seeded when the catalog is empty; mirrors the original tier offering.
DEFAULT_PLANS = [
    schemas.SubscriptionPlanCreate(
        name="Starter",
        description="For solo operators getting started with an AI receptionist",
        price=Decimal("49.00"),
        interval=schemas.PlanInterval.MONTHLY,
        features=[
            "100 AI receptionist minutes",
            "Appointment scheduling",
            "Invoicing",
            "1 staff member",
        ],
        sort_order=10,
        plan_tier="starter",
        max_call_minutes=100,
        overage_rate_per_minute=Decimal("0.15"),
        max_staff=1,
    ),
    schemas.SubscriptionPlanCreate(
        name="Professional",
        description="For growing businesses with a small team",
        price=Decimal("99.00"),
        interval=schemas.PlanInterval.MONTHLY,
        features=[
            "300 AI receptionist minutes",
            "Appointment scheduling",
            "Invoicing",
            "CRM",
            "Up to 5 staff members",
        ],
        sort_order=20,
        plan_tier="professional",
        max_call_minutes=300,
        overage_rate_per_minute=Decimal("0.12"),
        max_staff=5,
    ),
    schemas.SubscriptionPlanCreate(
        name="Business",
        description="For busy locations that live on the phone",
        price=Decimal("199.00"),
        interval=schemas.PlanInterval.MONTHLY,
        features=[
            "1000 AI receptionist minutes",
            "Appointment scheduling",
            "Invoicing",
            "CRM",
            "Up to 15 staff members",
        ],
        sort_order=30,
        plan_tier="business",
        max_call_minutes=1000,
        overage_rate_per_minute=Decimal("0.10"),
        max_staff=15,
    ),
    schemas.SubscriptionPlanCreate(
        name="Enterprise",
        description="For multi-location operations",
        price=Decimal("399.00"),
        interval=schemas.PlanInterval.MONTHLY,
        features=[
            "3000 AI receptionist minutes",
            "Appointment scheduling",
            "Invoicing",
            "CRM",
            "Unlimited staff members",
        ],
        sort_order=40,
        plan_tier="enterprise",
        max_call_minutes=3000,
        overage_rate_per_minute=Decimal("0.08"),
    ),
]


class PlanCatalog:
    """Reads and administers subscription plans."""

    def __init__(self, provider: BillingProvider):
        """Initialize the catalog with the billing provider."""
        self.provider = provider

    async def list_active_plans(self, db: AsyncSession) -> list[SubscriptionPlan]:
        """List active plans in display order."""
        return await crud.subscription_plan.get_active(db)

    async def get_plan(self, db: AsyncSession, plan_id: int) -> SubscriptionPlan:
        """Get a plan or raise NotFoundException."""
        plan = await crud.subscription_plan.get(db, id=plan_id)
        if not plan:
            raise NotFoundException(f"Plan {plan_id} not found")
        return plan

    async def _provider_price(
        self, plan_id: int, values: schemas.SubscriptionPlanBase
    ) -> ProviderPrice:
        return await self.provider.ensure_price(
            plan_id=plan_id,
            name=values.name,
            description=values.description,
            amount=values.price,
            interval=values.interval,
        )

    async def create_plan(
        self,
        db: AsyncSession,
        plan_in: schemas.SubscriptionPlanCreate,
        log: ContextualLogger = logger,
    ) -> SubscriptionPlan:
        """Create a plan together with its Stripe product and price.

        The row is flushed to obtain its id, the Stripe price is ensured, and only
        then is the transaction committed; any provider failure rolls the row back.
        """
        plan = SubscriptionPlan(**plan_in.model_dump())
        db.add(plan)
        try:
            await db.flush()
            price = await self._provider_price(plan.id, plan_in)
        except Exception:
            await db.rollback()
            raise

        plan.stripe_product_id = price.product_id
        plan.stripe_price_id = price.id
        await db.commit()
        await db.refresh(plan)

        log.info(f"Created plan {plan.id} ({plan.name}) with Stripe price {plan.stripe_price_id}")
        return plan

    async def update_plan(
        self,
        db: AsyncSession,
        plan_id: int,
        plan_patch: schemas.SubscriptionPlanUpdate,
        log: ContextualLogger = logger,
    ) -> SubscriptionPlan:
        """Patch a plan, keeping its Stripe price in step.

        Raises:
            NotFoundException: The plan does not exist.
            ImmutableFieldError: A field other than the display and usage fields
                changes while a running subscription references the plan.
        """
        plan = await self.get_plan(db, plan_id)
        changes = {
            key: value
            for key, value in plan_patch.model_dump(exclude_unset=True).items()
            if getattr(plan, key) != value
        }
        if not changes:
            return plan

        locked_fields = sorted(set(changes) - MUTABLE_WHILE_SUBSCRIBED)
        if locked_fields and await crud.subscription_plan.count_live_subscriptions(db, plan_id):
            raise ImmutableFieldError(
                ", ".join(locked_fields),
                message="Plan is referenced by a running subscription; cannot modify",
            )

        if PRICE_FIELDS & set(changes):
            merged = schemas.SubscriptionPlanBase.model_validate(
                {
                    **schemas.SubscriptionPlan.model_validate(plan).model_dump(),
                    **changes,
                }
            )
            price = await self._provider_price(plan.id, merged)
            changes["stripe_product_id"] = price.product_id
            changes["stripe_price_id"] = price.id

        plan = await crud.subscription_plan.update(db, db_obj=plan, obj_in=changes)
        log.info(f"Updated plan {plan.id}: {', '.join(sorted(changes))}")
        return plan

    async def ensure_provider_price(self, db: AsyncSession, plan: SubscriptionPlan) -> str:
        """Return the Stripe price id of a plan, creating product and price if needed."""
        values = schemas.SubscriptionPlanBase.model_validate(plan, from_attributes=True)
        price = await self._provider_price(plan.id, values)
        if price.id != plan.stripe_price_id or price.product_id != plan.stripe_product_id:
            await crud.subscription_plan.update(
                db,
                db_obj=plan,
                obj_in={"stripe_product_id": price.product_id, "stripe_price_id": price.id},
            )
        return price.id


async def seed_default_plans(db: AsyncSession) -> int:
    """Insert the default plans when the catalog is empty.

    Stripe prices are not created here; they are ensured on first checkout.

    Returns:
        int: Number of plans inserted.
    """
    if await crud.subscription_plan.count(db):
        return 0
    await crud.subscription_plan.create_many(db, DEFAULT_PLANS)
    logger.info(f"Seeded {len(DEFAULT_PLANS)} default subscription plans")
    return len(DEFAULT_PLANS)
