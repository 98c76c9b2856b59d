# flake8: noqa: F401
"""Schemas for the application."""

from .billing_event import BillingEventCreate, BillingEventOutcome
from .business_billing import (
    LIVE_STATUSES,
    BusinessBillingState,
    BusinessBillingUpdate,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    SubscriptionStatus,
    SubscriptionStatusResponse,
)
from .overage_charge import (
    OverageCharge,
    OverageChargeCreate,
    OverageChargeStatus,
    OverageHistory,
)
from .subscription_plan import (
    PlanInterval,
    SubscriptionPlan,
    SubscriptionPlanBase,
    SubscriptionPlanCreate,
    SubscriptionPlanUpdate,
)
from .usage import UsageInfo
