"""Usage schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class UsageInfo(BaseModel):
    """Call-minute usage of a business in its current billing period."""

    minutes_used: int
    minutes_included: int
    minutes_remaining: int
    overage_minutes: int
    overage_rate: Decimal
    overage_cost: Decimal
    percent_used: int
    plan_name: Optional[str] = None
    plan_tier: Optional[str] = None
    is_trial_active: bool
    trial_ends_at: Optional[datetime] = None
    subscription_status: str
    can_accept_calls: bool
    period_start: datetime
    period_end: datetime
