"""CRUD operations for the application."""

from .crud_billing_event import billing_event
from .crud_business import business
from .crud_call_log import call_log
from .crud_overage_charge import overage_charge
from .crud_subscription_plan import subscription_plan
