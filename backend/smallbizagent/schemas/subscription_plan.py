"""Subscription plan schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PlanInterval(str, Enum):
    """Billing interval of a plan."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionPlanBase(BaseModel):
    """Base schema for subscription plans."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, description="Price in major currency units")
    interval: PlanInterval = Field(default=PlanInterval.MONTHLY, validate_default=True)
    features: list[str] = Field(default_factory=list)
    active: bool = True
    sort_order: int = 0
    plan_tier: Optional[str] = None
    max_call_minutes: Optional[int] = Field(default=None, ge=0)
    overage_rate_per_minute: Optional[Decimal] = Field(default=None, ge=0)
    max_staff: Optional[int] = Field(default=None, ge=0)

    model_config = {"use_enum_values": True}


class SubscriptionPlanCreate(SubscriptionPlanBase):
    """Schema for creating a plan."""

    pass


class SubscriptionPlanUpdate(BaseModel):
    """Schema for patching a plan; only the provided fields change."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    interval: Optional[PlanInterval] = None
    features: Optional[list[str]] = None
    active: Optional[bool] = None
    sort_order: Optional[int] = None
    plan_tier: Optional[str] = None
    max_call_minutes: Optional[int] = Field(default=None, ge=0)
    overage_rate_per_minute: Optional[Decimal] = Field(default=None, ge=0)
    max_staff: Optional[int] = Field(default=None, ge=0)

    model_config = {"use_enum_values": True}


class SubscriptionPlanInDBBase(SubscriptionPlanBase):
    """Base schema for plans stored in the database."""

    id: int
    stripe_product_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    created_at: datetime
    modified_at: datetime

    model_config = {"from_attributes": True, "use_enum_values": True}


class SubscriptionPlan(SubscriptionPlanInDBBase):
    """Schema for a plan returned by the API."""

    pass
