"""Business billing state schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from .subscription_plan import SubscriptionPlan


class SubscriptionStatus(str, Enum):
    """Locally cached subscription status of a business."""

    NONE = "none"
    TRIALING = "trialing"
    ACTIVE = "active"
    CANCELING = "canceling"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    ERROR = "error"


# Statuses that keep a plan referenced by a running subscription.
LIVE_STATUSES = frozenset(
    {
        SubscriptionStatus.TRIALING,
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELING,
        SubscriptionStatus.PAST_DUE,
    }
)


class BusinessBillingState(BaseModel):
    """Cached billing state of a business."""

    business_id: int = Field(validation_alias=AliasChoices("business_id", "id"))
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    plan_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("plan_id", "subscription_plan_id")
    )
    status: SubscriptionStatus = Field(
        default=SubscriptionStatus.NONE,
        validation_alias=AliasChoices("status", "subscription_status"),
    )
    subscription_start_date: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    billing_event_at: Optional[datetime] = None
    billing_version: int = 0

    model_config = {"from_attributes": True}


class BusinessBillingUpdate(BaseModel):
    """Patch applied to the billing columns of a business."""

    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    subscription_plan_id: Optional[int] = None
    subscription_status: Optional[SubscriptionStatus] = None
    subscription_start_date: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None


class SubscriptionStatusResponse(BaseModel):
    """Billing status as shown to the business owner."""

    state: BusinessBillingState
    plan: Optional[SubscriptionPlan] = None


class CreateSubscriptionRequest(BaseModel):
    """Request body for starting a subscription."""

    business_id: int = Field(..., gt=0, validation_alias=AliasChoices("businessId", "business_id"))
    plan_id: int = Field(..., gt=0, validation_alias=AliasChoices("planId", "plan_id"))


class CreateSubscriptionResponse(BaseModel):
    """Result of starting a subscription.

    The client secret lets the frontend confirm the first payment with Stripe.js.
    """

    subscription_id: str
    client_secret: Optional[str] = None
    status: SubscriptionStatus

