"""Billing provider interface and the normalized values it returns.

The billing core only talks to the provider through ``BillingProvider``. The
concrete implementation is chosen once when the application is wired: the Stripe
client when credentials are configured, ``DisabledBillingProvider`` otherwise.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from smallbizagent.core.datetime_utils import from_unix_timestamp
from smallbizagent.core.exceptions import BillingNotConfiguredError


def _dig(obj: Any, *path: str) -> Any:
    """Walk nested mappings, returning None as soon as a key is missing."""
    for key in path:
        if obj is None:
            return None
        if isinstance(obj, dict):
            obj = obj.get(key)
        else:
            obj = getattr(obj, key, None)
    return obj


def _object_id(value: Any) -> Optional[str]:
    """Return the id of an expandable field, whether or not it was expanded."""
    if value is None or isinstance(value, str):
        return value
    return _dig(value, "id")


@dataclass(frozen=True)
class ProviderCustomer:
    """A provider customer."""

    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class ProviderPrice:
    """A recurring provider price and the product it belongs to."""

    id: str
    product_id: str
    unit_amount: int
    currency: str
    interval: str


@dataclass(frozen=True)
class ProviderSubscription:
    """A provider subscription, reduced to the fields billing state is derived from."""

    id: str
    customer_id: Optional[str]
    status: str
    cancel_at_period_end: bool = False
    current_period_end: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    start_date: Optional[datetime] = None
    client_secret: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, obj: Any) -> "ProviderSubscription":
        """Normalize a Stripe subscription object or payload.

        Newer API versions moved ``current_period_end`` onto the subscription items
        and replaced the invoice payment intent with a confirmation secret; both
        shapes are accepted.
        """
        period_end = _dig(obj, "current_period_end")
        if period_end is None:
            items = _dig(obj, "items", "data") or []
            item_ends = [_dig(item, "current_period_end") for item in items]
            item_ends = [value for value in item_ends if value is not None]
            period_end = max(item_ends) if item_ends else None

        latest_invoice = _dig(obj, "latest_invoice")
        client_secret = None
        if latest_invoice is not None and not isinstance(latest_invoice, str):
            client_secret = _dig(latest_invoice, "payment_intent", "client_secret") or _dig(
                latest_invoice, "confirmation_secret", "client_secret"
            )

        return cls(
            id=_dig(obj, "id"),
            customer_id=_object_id(_dig(obj, "customer")),
            status=_dig(obj, "status") or "",
            cancel_at_period_end=bool(_dig(obj, "cancel_at_period_end")),
            current_period_end=from_unix_timestamp(period_end),
            trial_end=from_unix_timestamp(_dig(obj, "trial_end")),
            start_date=from_unix_timestamp(_dig(obj, "start_date")),
            client_secret=client_secret,
            metadata=dict(_dig(obj, "metadata") or {}),
        )


@dataclass(frozen=True)
class ProviderInvoice:
    """A provider invoice, as delivered in invoice webhook events."""

    id: str
    customer_id: Optional[str]
    subscription_id: Optional[str]
    status: Optional[str] = None
    attempt_count: int = 0
    failure_message: Optional[str] = None
    payment_intent_id: Optional[str] = None
    hosted_invoice_url: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_overage(self) -> bool:
        """Whether the invoice was issued by the overage ledger."""
        return self.metadata.get("type") == "overage"

    @classmethod
    def from_stripe(cls, obj: Any) -> "ProviderInvoice":
        """Normalize a Stripe invoice payload.

        The failure message is the decline reason of the invoice payment when the
        payment intent is expanded; otherwise only a finalization error is known and
        the caller fetches the payment intent by id.
        """
        subscription_id = _object_id(_dig(obj, "subscription")) or _object_id(
            _dig(obj, "parent", "subscription_details", "subscription")
        )
        payment_intent = _dig(obj, "payment_intent")
        failure_message = _dig(payment_intent, "last_payment_error", "message") or _dig(
            obj, "last_finalization_error", "message"
        )
        return cls(
            id=_dig(obj, "id"),
            customer_id=_object_id(_dig(obj, "customer")),
            subscription_id=subscription_id,
            status=_dig(obj, "status"),
            attempt_count=int(_dig(obj, "attempt_count") or 0),
            failure_message=failure_message,
            payment_intent_id=_object_id(payment_intent),
            hosted_invoice_url=_dig(obj, "hosted_invoice_url"),
            metadata=dict(_dig(obj, "metadata") or {}),
        )


@dataclass(frozen=True)
class ProviderEvent:
    """A verified webhook event."""

    id: str
    type: str
    created: datetime
    data_object: dict[str, Any]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ProviderEvent":
        """Build an event from the decoded webhook body."""
        return cls(
            id=payload["id"],
            type=payload["type"],
            created=from_unix_timestamp(payload["created"]),
            data_object=dict(_dig(payload, "data", "object") or {}),
        )


class BillingProvider(ABC):
    """Operations the billing core needs from the payment provider.

    Every method either returns a normalized value or raises one of
    ``ProviderUnavailableError``, ``ProviderRejectedError`` or
    ``BillingNotConfiguredError``.
    """

    configured: bool = True

    @abstractmethod
    async def create_customer(
        self, *, business_id: int, email: Optional[str], name: str
    ) -> ProviderCustomer:
        """Create the provider customer of a business."""

    @abstractmethod
    async def ensure_price(
        self,
        *,
        plan_id: int,
        name: str,
        description: Optional[str],
        amount: Decimal,
        interval: str,
    ) -> ProviderPrice:
        """Find or create the product and recurring price of a plan."""

    @abstractmethod
    async def create_subscription(
        self, *, customer_id: str, price_id: str, metadata: dict[str, str]
    ) -> ProviderSubscription:
        """Create an incomplete subscription awaiting its first payment."""

    @abstractmethod
    async def get_subscription(self, subscription_id: str) -> ProviderSubscription:
        """Retrieve the current state of a subscription."""

    @abstractmethod
    async def get_payment_failure_message(self, payment_intent_id: str) -> Optional[str]:
        """Return why the last attempt of a payment failed, if the provider says."""

    @abstractmethod
    async def set_cancel_at_period_end(
        self, subscription_id: str, cancel_at_period_end: bool
    ) -> ProviderSubscription:
        """Schedule or unschedule cancellation at the end of the current period."""

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> ProviderEvent:
        """Verify a webhook signature and decode the event."""


class DisabledBillingProvider(BillingProvider):
    """Provider used when Stripe credentials are absent; every call is refused."""

    configured = False

    def _refuse(self):
        raise BillingNotConfiguredError(
            "Billing is not configured: STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET are required"
        )

    async def create_customer(self, *, business_id, email, name):
        """Refuse: billing is not configured."""
        self._refuse()

    async def ensure_price(self, *, plan_id, name, description, amount, interval):
        """Refuse: billing is not configured."""
        self._refuse()

    async def create_subscription(self, *, customer_id, price_id, metadata):
        """Refuse: billing is not configured."""
        self._refuse()

    async def get_subscription(self, subscription_id):
        """Refuse: billing is not configured."""
        self._refuse()

    async def get_payment_failure_message(self, payment_intent_id):
        """Refuse: billing is not configured."""
        self._refuse()

    async def set_cancel_at_period_end(self, subscription_id, cancel_at_period_end):
        """Refuse: billing is not configured."""
        self._refuse()

    def verify_webhook(self, payload, signature):
        """Refuse: billing is not configured."""
        self._refuse()
