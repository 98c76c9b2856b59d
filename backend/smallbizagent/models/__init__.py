"""Models for the application."""

from .billing_event import BillingEvent
from .business import Business
from .call_log import CallLog
from .overage_charge import OverageCharge
from .subscription_plan import SubscriptionPlan
