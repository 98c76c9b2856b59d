"""Overage ledger: usage-based charges and their settlement."""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent import crud, schemas
from smallbizagent.core.exceptions import NotFoundException
from smallbizagent.core.logging import ContextualLogger, logger
from smallbizagent.db.unit_of_work import UnitOfWork
from smallbizagent.models import OverageCharge
from smallbizagent.platform.billing.usage_meter import CallLogUsageMeter, UsageMeter


class OverageLedger:
    """Reads usage and overage history, and settles overage charges.

    Charges are created ``pending`` by the invoice issuance job and only ever
    move to ``paid`` or ``failed``, through ``settle_paid`` and ``settle_failed``.
    """

    def __init__(self, usage_meter: Optional[UsageMeter] = None):
        """Initialize the ledger with a usage meter."""
        self.usage_meter = usage_meter or CallLogUsageMeter()

    async def get_usage(self, db: AsyncSession, business_id: int) -> schemas.UsageInfo:
        """Current-period usage of a business. Works without billing configured."""
        business = await crud.business.get(db, id=business_id)
        if not business:
            raise NotFoundException(f"Business {business_id} not found")
        return await self.usage_meter.get_usage(db, business)

    async def get_overage_history(
        self, db: AsyncSession, business_id: int, limit: Optional[int] = None
    ) -> list[OverageCharge]:
        """Overage charges of a business, newest period first."""
        return await crud.overage_charge.get_by_business(db, business_id, limit=limit)

    async def get_charge_business_id(
        self, db: AsyncSession, stripe_invoice_id: str
    ) -> Optional[int]:
        """Business owning the charge of a Stripe invoice, if the invoice is in the ledger."""
        charge = await crud.overage_charge.get_by_stripe_invoice(db, stripe_invoice_id)
        return charge.business_id if charge else None

    async def record_pending_charge(
        self, db: AsyncSession, charge_in: schemas.OverageChargeCreate
    ) -> OverageCharge:
        """Record an issued overage invoice as a pending charge."""
        charge = await crud.overage_charge.create(db, obj_in=charge_in)
        logger.info(
            f"Recorded pending overage charge {charge.id} for business {charge.business_id} "
            f"(invoice {charge.stripe_invoice_id}, amount {charge.amount})"
        )
        return charge

    async def settle_paid(
        self,
        db: AsyncSession,
        stripe_invoice_id: str,
        *,
        paid_at: Optional[datetime] = None,
        uow: Optional[UnitOfWork] = None,
        log: ContextualLogger = logger,
    ) -> bool:
        """Mark a pending charge paid. Returns False if it was missing or already settled."""
        settled = await crud.overage_charge.settle(
            db,
            stripe_invoice_id=stripe_invoice_id,
            status=schemas.OverageChargeStatus.PAID,
            settled_at=paid_at,
            uow=uow,
        )
        if settled:
            log.info(f"Overage invoice {stripe_invoice_id} paid")
        else:
            log.info(f"Overage invoice {stripe_invoice_id} not pending, payment ignored")
        return settled

    async def settle_failed(
        self,
        db: AsyncSession,
        stripe_invoice_id: str,
        failure_reason: str,
        *,
        uow: Optional[UnitOfWork] = None,
        log: ContextualLogger = logger,
    ) -> bool:
        """Mark a pending charge failed. Returns False if it was missing or already settled."""
        settled = await crud.overage_charge.settle(
            db,
            stripe_invoice_id=stripe_invoice_id,
            status=schemas.OverageChargeStatus.FAILED,
            failure_reason=failure_reason,
            uow=uow,
        )
        if settled:
            log.warning(f"Overage invoice {stripe_invoice_id} failed: {failure_reason}")
        else:
            log.info(f"Overage invoice {stripe_invoice_id} not pending, failure ignored")
        return settled
