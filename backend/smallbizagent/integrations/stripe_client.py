"""Stripe API client for billing operations.

This module provides a clean interface to the Stripe API, handling all direct
Stripe interactions without business logic. Results are normalized into the
``smallbizagent.integrations.billing_provider`` value types and failures into
the provider error taxonomy.
"""

import asyncio
import json
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Awaitable, Dict, Optional, TypeVar

import stripe

from smallbizagent.core.config import BillingConfig
from smallbizagent.core.exceptions import (
    ProviderRejectedError,
    ProviderUnavailableError,
    SignatureInvalidError,
)
from smallbizagent.core.logging import logger
from smallbizagent.integrations.billing_provider import (
    BillingProvider,
    ProviderCustomer,
    ProviderEvent,
    ProviderPrice,
    ProviderSubscription,
)

T = TypeVar("T")

STRIPE_INTERVALS = {"monthly": "month", "yearly": "year"}

# API versions from this date on expose the first invoice's secret as
# latest_invoice.confirmation_secret instead of latest_invoice.payment_intent.
CONFIRMATION_SECRET_API_VERSION = "2025-03-31"


class StripeClient(BillingProvider):
    """Client for Stripe API operations."""

    def __init__(self, config: BillingConfig):
        """Initialize Stripe client.

        Args:
            config: Billing configuration; credentials are sent per request and never
                stored on the ``stripe`` module.
        """
        self.config = config
        # Retries happen through webhook redelivery only
        stripe.max_network_retries = 0

    def _request_options(self) -> Dict[str, Any]:
        return {"api_key": self.config.secret_key, "stripe_version": self.config.api_version}

    def _sanitize_text(self, text: Optional[str]) -> Optional[str]:
        """Sanitize text for Stripe API (ASCII-only)."""
        if not text:
            return text
        return text.encode("ascii", "replace").decode("ascii")

    def _clean_metadata(self, metadata: Optional[Dict[str, Any]]) -> Dict[str, str]:
        """Clean metadata values for Stripe."""
        if not metadata:
            return {}

        return {
            self._sanitize_text(str(key)): self._sanitize_text(str(value))
            for key, value in metadata.items()
        }

    async def _call(self, operation: str, request: Awaitable[T]) -> T:
        """Await a Stripe request within the configured timeout and map its failures.

        Args:
            operation: Human readable name of the operation, used in error messages.
            request: The pending Stripe request.

        Raises:
            ProviderUnavailableError: On timeout, connection failure, rate limiting or a
                Stripe server error. The remote outcome is unknown.
            ProviderRejectedError: When Stripe declined the request.
        """
        try:
            return await asyncio.wait_for(request, timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning(f"Stripe request timed out: {operation}")
            raise ProviderUnavailableError(
                service_name="Stripe",
                message=f"Timed out after {self.config.timeout_seconds}s trying to {operation}",
            ) from e
        except (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError) as e:
            logger.warning(f"Stripe unavailable during {operation}: {e}")
            raise ProviderUnavailableError(
                service_name="Stripe",
                message=f"Failed to {operation}: {e.user_message or str(e)}",
            ) from e
        except stripe.StripeError as e:
            raise ProviderRejectedError(
                service_name="Stripe",
                message=f"Failed to {operation}: {e.user_message or str(e)}",
            ) from e

    # Customer operations

    async def create_customer(
        self, *, business_id: int, email: Optional[str], name: str
    ) -> ProviderCustomer:
        """Create a Stripe customer.

        The idempotency key is derived from the business, so a retried request
        within Stripe's idempotency window returns the same customer.
        """
        params: Dict[str, Any] = {
            "name": self._sanitize_text(name),
            "metadata": self._clean_metadata({"business_id": business_id}),
        }
        if email:
            params["email"] = self._sanitize_text(email)

        customer = await self._call(
            "create customer",
            stripe.Customer.create_async(
                idempotency_key=f"customer-business-{business_id}",
                **self._request_options(),
                **params,
            ),
        )
        return ProviderCustomer(id=customer["id"], email=customer.get("email"))

    # Product and price operations

    async def _find_product(self, product_id: str) -> Optional[stripe.Product]:
        try:
            return await stripe.Product.retrieve_async(product_id, **self._request_options())
        except stripe.InvalidRequestError as e:
            if e.code == "resource_missing":
                return None
            raise

    async def _find_price(self, lookup_key: str) -> Optional[stripe.Price]:
        prices = await stripe.Price.list_async(
            lookup_keys=[lookup_key], active=True, limit=1, **self._request_options()
        )
        data = prices.get("data") or []
        return data[0] if data else None

    async def ensure_price(
        self,
        *,
        plan_id: int,
        name: str,
        description: Optional[str],
        amount: Decimal,
        interval: str,
    ) -> ProviderPrice:
        """Find or create the product and recurring price of a plan.

        The product id is derived from the plan id and the price is found by a
        lookup key derived from plan, interval, amount and currency, so calling
        this again for an unchanged plan creates nothing.
        """
        stripe_interval = STRIPE_INTERVALS[interval]
        unit_amount = int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        currency = self.config.currency
        product_id = f"{self.config.product_prefix}_{plan_id}"
        lookup_key = f"{product_id}_{stripe_interval}_{unit_amount}_{currency}"

        product = await self._call("retrieve product", self._find_product(product_id))
        if product is None:
            params: Dict[str, Any] = {
                "id": product_id,
                "name": self._sanitize_text(name),
                "metadata": self._clean_metadata({"plan_id": plan_id}),
            }
            if description:
                params["description"] = self._sanitize_text(description)
            product = await self._call(
                "create product",
                stripe.Product.create_async(
                    idempotency_key=f"product-{product_id}", **self._request_options(), **params
                ),
            )
            logger.info(f"Created Stripe product {product_id} for plan {plan_id}")
        elif product.get("name") != self._sanitize_text(name):
            await self._call(
                "rename product",
                stripe.Product.modify_async(
                    product_id, name=self._sanitize_text(name), **self._request_options()
                ),
            )

        price = await self._call("look up price", self._find_price(lookup_key))
        if price is None:
            price = await self._call(
                "create price",
                stripe.Price.create_async(
                    idempotency_key=f"price-{lookup_key}",
                    product=product_id,
                    unit_amount=unit_amount,
                    currency=currency,
                    recurring={"interval": stripe_interval},
                    lookup_key=lookup_key,
                    metadata=self._clean_metadata({"plan_id": plan_id}),
                    **self._request_options(),
                ),
            )
            logger.info(f"Created Stripe price {price['id']} ({lookup_key}) for plan {plan_id}")

        return ProviderPrice(
            id=price["id"],
            product_id=product_id,
            unit_amount=unit_amount,
            currency=currency,
            interval=stripe_interval,
        )

    # Subscription operations

    def _payment_expand(self) -> list[str]:
        """Expansion exposing the client secret of the latest invoice's payment."""
        if self.config.api_version >= CONFIRMATION_SECRET_API_VERSION:
            return ["latest_invoice.confirmation_secret"]
        return ["latest_invoice.payment_intent"]

    async def create_subscription(
        self, *, customer_id: str, price_id: str, metadata: Dict[str, Any]
    ) -> ProviderSubscription:
        """Create a subscription whose first invoice waits for payment confirmation."""
        subscription = await self._call(
            "create subscription",
            stripe.Subscription.create_async(
                customer=customer_id,
                items=[{"price": price_id}],
                payment_behavior="default_incomplete",
                payment_settings={"save_default_payment_method": "on_subscription"},
                metadata=self._clean_metadata(metadata),
                expand=self._payment_expand(),
                **self._request_options(),
            ),
        )
        return ProviderSubscription.from_stripe(subscription)

    async def get_subscription(self, subscription_id: str) -> ProviderSubscription:
        """Retrieve a subscription, with the client secret of its open first payment."""
        subscription = await self._call(
            "retrieve subscription",
            stripe.Subscription.retrieve_async(
                subscription_id, expand=self._payment_expand(), **self._request_options()
            ),
        )
        return ProviderSubscription.from_stripe(subscription)

    async def set_cancel_at_period_end(
        self, subscription_id: str, cancel_at_period_end: bool
    ) -> ProviderSubscription:
        """Set or clear the cancel-at-period-end flag of a subscription."""
        operation = "cancel subscription" if cancel_at_period_end else "resume subscription"
        subscription = await self._call(
            operation,
            stripe.Subscription.modify_async(
                subscription_id,
                cancel_at_period_end=cancel_at_period_end,
                **self._request_options(),
            ),
        )
        return ProviderSubscription.from_stripe(subscription)

    # Payment operations

    async def get_payment_failure_message(self, payment_intent_id: str) -> Optional[str]:
        """Read the decline reason of the last attempt of a payment intent."""
        intent = await self._call(
            "retrieve payment intent",
            stripe.PaymentIntent.retrieve_async(payment_intent_id, **self._request_options()),
        )
        error = intent.get("last_payment_error") or {}
        return error.get("message")

    # Webhook operations

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> ProviderEvent:
        """Verify the Stripe-Signature header and decode the event."""
        if not signature:
            raise SignatureInvalidError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(
                payload, signature, self.config.webhook_secret, api_key=self.config.secret_key
            )
        except ValueError as e:
            raise SignatureInvalidError(f"Invalid webhook payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise SignatureInvalidError(f"Invalid webhook signature: {e}") from e

        try:
            return ProviderEvent.from_payload(json.loads(payload))
        except (KeyError, TypeError) as e:
            raise SignatureInvalidError(f"Malformed webhook event: {e}") from e
