"""Overage charge schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class OverageChargeStatus(str, Enum):
    """Settlement status of an overage charge."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class OverageChargeCreate(BaseModel):
    """Schema for recording an issued overage invoice."""

    business_id: int
    period_start: datetime
    period_end: datetime
    minutes_used: int
    minutes_included: int
    overage_minutes: int
    overage_rate: Decimal
    amount: Decimal
    stripe_invoice_id: Optional[str] = None
    stripe_invoice_url: Optional[str] = None
    plan_name: Optional[str] = None
    plan_tier: Optional[str] = None


class OverageCharge(BaseModel):
    """Overage charge as stored and returned by the API."""

    id: int
    business_id: int
    period_start: datetime
    period_end: datetime
    minutes_used: int
    minutes_included: int
    overage_minutes: int
    overage_rate: Decimal
    amount: Decimal
    stripe_invoice_id: Optional[str] = None
    stripe_invoice_url: Optional[str] = None
    status: OverageChargeStatus
    failure_reason: Optional[str] = None
    paid_at: Optional[datetime] = None
    plan_name: Optional[str] = None
    plan_tier: Optional[str] = None
    created_at: datetime
    modified_at: datetime

    model_config = {"from_attributes": True}


class OverageHistory(BaseModel):
    """Overage charges of a business, newest period first."""

    charges: list[OverageCharge]
