"""CRUD operations for overage charges."""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent.core.datetime_utils import utc_now_naive
from smallbizagent.crud._base_system import CRUDBaseSystem
from smallbizagent.db.unit_of_work import UnitOfWork
from smallbizagent.models.overage_charge import OverageCharge
from smallbizagent.schemas.overage_charge import OverageChargeCreate, OverageChargeStatus


class CRUDOverageCharge(CRUDBaseSystem[OverageCharge, OverageChargeCreate, OverageChargeCreate]):
    """CRUD operations for the overage ledger."""

    async def get_by_stripe_invoice(
        self, db: AsyncSession, stripe_invoice_id: str
    ) -> Optional[OverageCharge]:
        """Get an overage charge by its Stripe invoice id."""
        result = await db.execute(
            select(OverageCharge)
            .where(OverageCharge.stripe_invoice_id == stripe_invoice_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_business(
        self, db: AsyncSession, business_id: int, *, limit: Optional[int] = None
    ) -> list[OverageCharge]:
        """Get the overage charges of a business, newest period first."""
        query = (
            select(OverageCharge)
            .where(OverageCharge.business_id == business_id)
            .order_by(OverageCharge.period_start.desc(), OverageCharge.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def settle(
        self,
        db: AsyncSession,
        *,
        stripe_invoice_id: str,
        status: OverageChargeStatus,
        failure_reason: Optional[str] = None,
        settled_at: Optional[datetime] = None,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Move a pending charge to a terminal status.

        The update is conditional on ``status = 'pending'``, so a charge that is
        already paid or failed is never overwritten.

        Returns:
        -------
            bool: Whether a pending charge was settled.

        """
        if status == OverageChargeStatus.PENDING:
            raise ValueError("Charges can only be settled to a terminal status")

        values = {
            "status": status.value,
            "failure_reason": failure_reason if status == OverageChargeStatus.FAILED else None,
            "modified_at": utc_now_naive(),
        }
        if status == OverageChargeStatus.PAID:
            values["paid_at"] = settled_at or utc_now_naive()

        result = await db.execute(
            update(OverageCharge)
            .where(
                OverageCharge.stripe_invoice_id == stripe_invoice_id,
                OverageCharge.status == OverageChargeStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if uow is None:
            await db.commit()

        return result.rowcount == 1


overage_charge = CRUDOverageCharge(OverageCharge)
