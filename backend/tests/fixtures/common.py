"""Common fixtures and builders shared by the billing tests."""

import hashlib
import hmac
import itertools
import json
import time
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from smallbizagent.core.config import BillingConfig
from smallbizagent.core.datetime_utils import utc_now_naive
from smallbizagent.integrations.billing_provider import (
    BillingProvider,
    ProviderCustomer,
    ProviderEvent,
    ProviderPrice,
    ProviderSubscription,
)
from smallbizagent.integrations.stripe_client import StripeClient
from smallbizagent.models import Business, OverageCharge, SubscriptionPlan

WEBHOOK_SECRET = "whsec_test_secret"

TEST_BILLING_CONFIG = BillingConfig(
    secret_key="sk_test_fake",
    webhook_secret=WEBHOOK_SECRET,
    api_version="2024-06-20",
    timeout_seconds=1.0,
)


class FakeBillingProvider(BillingProvider):
    """In-memory provider recording every call.

    Webhook signatures are verified by the real Stripe client so the tests
    exercise the production verification path.
    """

    def __init__(self):
        self._verifier = StripeClient(TEST_BILLING_CONFIG)
        self._ids = itertools.count(1)
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}
        self.subscriptions: dict[str, ProviderSubscription] = {}
        self.payment_failures: dict[str, str] = {}

    def _record(self, call: str, /, **kwargs: Any) -> None:
        self.calls.append((call, kwargs))
        failure = self.failures.pop(call, None)
        if failure is not None:
            raise failure

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for call, kwargs in self.calls if call == name]

    async def create_customer(self, *, business_id, email, name):
        self._record("create_customer", business_id=business_id, email=email, name=name)
        return ProviderCustomer(id=f"cus_{next(self._ids)}", email=email)

    async def ensure_price(self, *, plan_id, name, description, amount, interval):
        self._record("ensure_price", plan_id=plan_id, name=name, amount=amount, interval=interval)
        unit_amount = int(Decimal(amount) * 100)
        return ProviderPrice(
            id=f"price_{plan_id}_{interval}_{unit_amount}",
            product_id=f"sba_plan_{plan_id}",
            unit_amount=unit_amount,
            currency="usd",
            interval=interval,
        )

    async def create_subscription(self, *, customer_id, price_id, metadata):
        self._record(
            "create_subscription", customer_id=customer_id, price_id=price_id, metadata=metadata
        )
        subscription_id = f"sub_{next(self._ids)}"
        subscription = ProviderSubscription(
            id=subscription_id,
            customer_id=customer_id,
            status="incomplete",
            current_period_end=utc_now_naive().replace(microsecond=0) + timedelta(days=30),
            start_date=utc_now_naive().replace(microsecond=0),
            client_secret=f"pi_{subscription_id}_secret",
            metadata={key: str(value) for key, value in metadata.items()},
        )
        self.subscriptions[subscription_id] = subscription
        return subscription

    async def get_subscription(self, subscription_id):
        self._record("get_subscription", subscription_id=subscription_id)
        return self.subscriptions[subscription_id]

    async def set_cancel_at_period_end(self, subscription_id, cancel_at_period_end):
        self._record(
            "set_cancel_at_period_end",
            subscription_id=subscription_id,
            cancel_at_period_end=cancel_at_period_end,
        )
        subscription = replace(
            self.subscriptions[subscription_id], cancel_at_period_end=cancel_at_period_end
        )
        self.subscriptions[subscription_id] = subscription
        return subscription

    async def get_payment_failure_message(self, payment_intent_id):
        self._record("get_payment_failure_message", payment_intent_id=payment_intent_id)
        return self.payment_failures.get(payment_intent_id)

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> ProviderEvent:
        return self._verifier.verify_webhook(payload, signature)


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None):
    """Build a Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(
    event_id: str, event_type: str, data_object: dict[str, Any], created: Optional[int] = None
) -> str:
    """Serialize a Stripe event envelope."""
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "api_version": TEST_BILLING_CONFIG.api_version,
            "type": event_type,
            "created": created or int(time.time()),
            "data": {"object": data_object},
        }
    )


def subscription_payload(
    subscription_id: str,
    customer_id: str,
    status: str = "active",
    *,
    cancel_at_period_end: bool = False,
    current_period_end: Optional[int] = None,
    metadata: Optional[dict[str, str]] = None,
) -> dict[str, Any]:
    """A Stripe subscription object as delivered in webhooks."""
    now = int(time.time())
    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer_id,
        "status": status,
        "cancel_at_period_end": cancel_at_period_end,
        "current_period_end": current_period_end or now + 30 * 24 * 3600,
        "start_date": now - 24 * 3600,
        "trial_end": None,
        "metadata": metadata or {},
    }


def invoice_payload(
    invoice_id: str,
    customer_id: str,
    *,
    subscription_id: Optional[str] = None,
    metadata: Optional[dict[str, str]] = None,
    attempt_count: int = 1,
    payment_intent: Optional[str] = None,
) -> dict[str, Any]:
    """A Stripe invoice object as delivered in webhooks."""
    return {
        "id": invoice_id,
        "object": "invoice",
        "customer": customer_id,
        "subscription": subscription_id,
        "status": "open",
        "attempt_count": attempt_count,
        "payment_intent": payment_intent,
        "metadata": metadata or {},
    }


def make_plan(**overrides: Any) -> SubscriptionPlan:
    values = {
        "name": "Professional",
        "description": "For growing businesses",
        "price": Decimal("99.00"),
        "interval": "monthly",
        "features": ["300 AI receptionist minutes"],
        "active": True,
        "sort_order": 20,
        "plan_tier": "professional",
        "max_call_minutes": 300,
        "overage_rate_per_minute": Decimal("0.12"),
        "max_staff": 5,
    }
    values.update(overrides)
    return SubscriptionPlan(**values)


def make_business(**overrides: Any) -> Business:
    values = {
        "name": "Main Street Plumbing",
        "email": "owner@mainstreetplumbing.test",
        "subscription_status": "none",
        "cancel_at_period_end": False,
        "billing_version": 0,
    }
    values.update(overrides)
    return Business(**values)


def make_overage_charge(business_id: int, stripe_invoice_id: str, **overrides: Any):
    period_start = overrides.pop("period_start", datetime(2026, 9, 1))
    values = {
        "business_id": business_id,
        "period_start": period_start,
        "period_end": period_start + timedelta(days=30),
        "minutes_used": 350,
        "minutes_included": 300,
        "overage_minutes": 50,
        "overage_rate": Decimal("0.12"),
        "amount": Decimal("6.00"),
        "stripe_invoice_id": stripe_invoice_id,
        "status": "pending",
        "plan_name": "Professional",
        "plan_tier": "professional",
    }
    values.update(overrides)
    return OverageCharge(**values)


def unix(value: datetime) -> int:
    """Naive UTC datetime to a unix timestamp."""
    return int((value - datetime(1970, 1, 1)).total_seconds())


__all__ = [
    "FakeBillingProvider",
    "WEBHOOK_SECRET",
    "invoice_payload",
    "make_business",
    "make_overage_charge",
    "make_plan",
    "sign_payload",
    "stripe_event",
    "subscription_payload",
    "unix",
]
