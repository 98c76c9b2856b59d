"""Billing event schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class BillingEventOutcome(str, Enum):
    """What processing a webhook event did to local state."""

    APPLIED = "applied"
    STALE = "stale"
    UNMATCHED = "unmatched"
    IGNORED = "ignored"


class BillingEventCreate(BaseModel):
    """Schema for recording a processed webhook event."""

    stripe_event_id: str
    event_type: str
    outcome: BillingEventOutcome
    business_id: Optional[int] = None
    event_created_at: Optional[datetime] = None
    event_data: Optional[dict] = None

    model_config = {"use_enum_values": True}
