"""CRUD operations for the billing columns of businesses."""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent.core.datetime_utils import utc_now_naive
from smallbizagent.crud._base_system import CRUDBaseSystem
from smallbizagent.db.unit_of_work import UnitOfWork
from smallbizagent.models.business import Business
from smallbizagent.schemas.business_billing import BusinessBillingUpdate


class CRUDBusiness(CRUDBaseSystem[Business, BaseModel, BusinessBillingUpdate]):
    """CRUD operations for businesses.

    Billing writes never go through the generic ``update``: they use
    ``update_billing``, which bumps ``billing_version`` and, for provider
    observations, only applies when the observation is not older than the
    last one applied.
    """

    async def get_for_update(self, db: AsyncSession, id: int) -> Optional[Business]:
        """Get a business and lock its row until the transaction ends."""
        result = await db.execute(
            select(Business)
            .where(Business.id == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_stripe_subscription(
        self, db: AsyncSession, stripe_subscription_id: str, *, lock: bool = False
    ) -> Optional[Business]:
        """Get the business that owns a Stripe subscription."""
        query = select(Business).where(Business.stripe_subscription_id == stripe_subscription_id)
        if lock:
            query = query.with_for_update()
        result = await db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def update_billing(
        self,
        db: AsyncSession,
        *,
        business_id: int,
        obj_in: Union[BusinessBillingUpdate, dict[str, Any]],
        observed_at: Optional[datetime] = None,
        expected_version: Optional[int] = None,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Write billing columns with a compare-and-set guard.

        Args:
        ----
            db (AsyncSession): The database session.
            business_id (int): The business to update.
            obj_in: The billing columns to write; unset fields are left alone.
            observed_at (datetime, optional): Time of the provider observation being
                applied. When given, the write only happens if no newer observation
                has been applied, and the marker advances to this value. Optimistic
                user-action writes pass None and leave the marker untouched.
            expected_version (int, optional): Only write if ``billing_version`` still
                has this value.
            uow (UnitOfWork, optional): Unit of work for transaction control.

        Returns:
        -------
            bool: Whether the row was written.

        """
        if not isinstance(obj_in, dict):
            obj_in = obj_in.model_dump(exclude_unset=True, mode="python")
        values = {
            key: value.value if hasattr(value, "value") else value for key, value in obj_in.items()
        }

        stmt = update(Business).where(Business.id == business_id)
        if observed_at is not None:
            stmt = stmt.where(
                or_(
                    Business.billing_event_at.is_(None),
                    Business.billing_event_at <= observed_at,
                )
            )
            values["billing_event_at"] = observed_at
        if expected_version is not None:
            stmt = stmt.where(Business.billing_version == expected_version)

        values["billing_version"] = Business.billing_version + 1
        values["modified_at"] = utc_now_naive()

        result = await db.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )

        if uow is None:
            await db.commit()

        return result.rowcount == 1


business = CRUDBusiness(Business)
