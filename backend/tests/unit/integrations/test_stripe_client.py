"""Unit tests for the Stripe client.

Stripe is never called: the ``stripe`` resource methods are patched.
"""

import asyncio
import json
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
import stripe

from smallbizagent.core.config import BillingConfig
from smallbizagent.core.exceptions import (
    ProviderRejectedError,
    ProviderUnavailableError,
    SignatureInvalidError,
)
from smallbizagent.integrations.stripe_client import StripeClient
from tests.fixtures.common import WEBHOOK_SECRET, sign_payload, stripe_event


@pytest.fixture
def client() -> StripeClient:
    return StripeClient(
        BillingConfig(
            secret_key="sk_test_fake",
            webhook_secret=WEBHOOK_SECRET,
            api_version="2024-06-20",
            timeout_seconds=0.05,
        )
    )


@pytest.mark.parametrize(
    "error",
    [
        stripe.APIConnectionError("connection reset"),
        stripe.RateLimitError("too many requests"),
        stripe.APIError("stripe is down"),
    ],
)
async def test_transient_failures_are_unavailable(client, error):
    """Test network, rate limit and server failures are retryable."""
    with patch.object(stripe.Subscription, "retrieve_async", AsyncMock(side_effect=error)):
        with pytest.raises(ProviderUnavailableError) as exc_info:
            await client.get_subscription("sub_1")

    assert exc_info.value.retryable is True


async def test_declined_request_is_rejected(client):
    """Test a request Stripe refused is not retryable."""
    error = stripe.InvalidRequestError("No such subscription: 'sub_1'", "id")
    with patch.object(stripe.Subscription, "retrieve_async", AsyncMock(side_effect=error)):
        with pytest.raises(ProviderRejectedError) as exc_info:
            await client.get_subscription("sub_1")

    assert exc_info.value.retryable is False


async def test_timeout_is_unavailable(client):
    """Test a call exceeding the configured timeout is abandoned."""

    async def never_answers(*args, **kwargs):
        await asyncio.sleep(10)

    with patch.object(stripe.Subscription, "retrieve_async", never_answers):
        with pytest.raises(ProviderUnavailableError):
            await client.get_subscription("sub_1")


async def test_requests_carry_key_and_version(client):
    """Test credentials are sent per request."""
    retrieve = AsyncMock(return_value={"id": "sub_1", "customer": "cus_1", "status": "active"})
    with patch.object(stripe.Subscription, "retrieve_async", retrieve):
        subscription = await client.get_subscription("sub_1")

    assert subscription.status == "active"
    retrieve.assert_awaited_once_with(
        "sub_1",
        expand=["latest_invoice.payment_intent"],
        api_key="sk_test_fake",
        stripe_version="2024-06-20",
    )


async def test_create_customer_is_idempotent_per_business(client):
    """Test the customer idempotency key is derived from the business."""
    create = AsyncMock(return_value={"id": "cus_1", "email": "owner@example.test"})
    with patch.object(stripe.Customer, "create_async", create):
        customer = await client.create_customer(
            business_id=42, email="owner@example.test", name="Café Olé"
        )

    assert customer.id == "cus_1"
    kwargs = create.await_args.kwargs
    assert kwargs["idempotency_key"] == "customer-business-42"
    assert kwargs["metadata"] == {"business_id": "42"}
    assert kwargs["name"] == "Caf? Ol?"


async def test_ensure_price_reuses_existing_product_and_price(client):
    """Test an unchanged plan creates nothing in Stripe."""
    with patch.object(
        stripe.Product, "retrieve_async", AsyncMock(return_value={"id": "sba_plan_3", "name": "Pro"})
    ), patch.object(
        stripe.Price, "list_async", AsyncMock(return_value={"data": [{"id": "price_existing"}]})
    ) as list_prices, patch.object(
        stripe.Product, "create_async", AsyncMock()
    ) as create_product, patch.object(
        stripe.Price, "create_async", AsyncMock()
    ) as create_price:
        price = await client.ensure_price(
            plan_id=3, name="Pro", description=None, amount=Decimal("99.00"), interval="monthly"
        )

    assert price.id == "price_existing"
    assert price.product_id == "sba_plan_3"
    assert price.unit_amount == 9900
    assert list_prices.await_args.kwargs["lookup_keys"] == ["sba_plan_3_month_9900_usd"]
    create_product.assert_not_awaited()
    create_price.assert_not_awaited()


async def test_ensure_price_creates_missing_product_and_price(client):
    """Test a new plan gets a product with a deterministic id and a looked-up price."""
    missing = stripe.InvalidRequestError("No such product", "id", code="resource_missing")
    with patch.object(
        stripe.Product, "retrieve_async", AsyncMock(side_effect=missing)
    ), patch.object(
        stripe.Product, "create_async", AsyncMock(return_value={"id": "sba_plan_5", "name": "X"})
    ) as create_product, patch.object(
        stripe.Price, "list_async", AsyncMock(return_value={"data": []})
    ), patch.object(
        stripe.Price, "create_async", AsyncMock(return_value={"id": "price_new"})
    ) as create_price:
        price = await client.ensure_price(
            plan_id=5, name="X", description="Yearly", amount=Decimal("990"), interval="yearly"
        )

    assert price.id == "price_new"
    assert create_product.await_args.kwargs["id"] == "sba_plan_5"
    price_kwargs = create_price.await_args.kwargs
    assert price_kwargs["unit_amount"] == 99000
    assert price_kwargs["recurring"] == {"interval": "year"}
    assert price_kwargs["lookup_key"] == "sba_plan_5_year_99000_usd"


async def test_create_subscription_waits_for_payment(client):
    """Test subscriptions are created incomplete with the first invoice expanded."""
    create = AsyncMock(
        return_value={
            "id": "sub_9",
            "customer": "cus_1",
            "status": "incomplete",
            "latest_invoice": {"payment_intent": {"client_secret": "pi_9_secret"}},
        }
    )
    with patch.object(stripe.Subscription, "create_async", create):
        subscription = await client.create_subscription(
            customer_id="cus_1", price_id="price_1", metadata={"business_id": 1, "plan_id": 2}
        )

    assert subscription.client_secret == "pi_9_secret"
    kwargs = create.await_args.kwargs
    assert kwargs["payment_behavior"] == "default_incomplete"
    assert kwargs["expand"] == ["latest_invoice.payment_intent"]
    assert kwargs["metadata"] == {"business_id": "1", "plan_id": "2"}


async def test_get_payment_failure_message(client):
    """Test the decline reason is read from the payment intent's last error."""
    retrieve = AsyncMock(
        return_value={"id": "pi_1", "last_payment_error": {"message": "Your card has expired."}}
    )
    with patch.object(stripe.PaymentIntent, "retrieve_async", retrieve):
        message = await client.get_payment_failure_message("pi_1")

    assert message == "Your card has expired."
    retrieve.assert_awaited_once_with(
        "pi_1", api_key="sk_test_fake", stripe_version="2024-06-20"
    )


async def test_get_payment_failure_message_without_error(client):
    """Test a payment intent without a recorded error gives no message."""
    retrieve = AsyncMock(return_value={"id": "pi_1", "last_payment_error": None})
    with patch.object(stripe.PaymentIntent, "retrieve_async", retrieve):
        assert await client.get_payment_failure_message("pi_1") is None


def test_verify_webhook_accepts_valid_signature(client):
    """Test a correctly signed payload is decoded into an event."""
    payload = stripe_event("evt_1", "invoice.paid", {"id": "in_1"})

    event = client.verify_webhook(payload.encode("utf-8"), sign_payload(payload))

    assert event.id == "evt_1"
    assert event.type == "invoice.paid"
    assert event.data_object["id"] == "in_1"


@pytest.mark.parametrize(
    "signature",
    [
        None,
        "",
        "t=1,v1=deadbeef",
    ],
)
def test_verify_webhook_rejects_bad_signature(client, signature):
    """Test missing and forged signatures are rejected."""
    payload = stripe_event("evt_1", "invoice.paid", {"id": "in_1"})

    with pytest.raises(SignatureInvalidError):
        client.verify_webhook(payload.encode("utf-8"), signature)


def test_verify_webhook_rejects_wrong_secret(client):
    """Test a payload signed with another secret is rejected."""
    payload = stripe_event("evt_1", "invoice.paid", {"id": "in_1"})

    with pytest.raises(SignatureInvalidError):
        client.verify_webhook(payload.encode("utf-8"), sign_payload(payload, secret="whsec_other"))


def test_verify_webhook_rejects_tampered_payload(client):
    """Test a payload changed after signing is rejected."""
    payload = stripe_event("evt_1", "invoice.paid", {"id": "in_1"})
    signature = sign_payload(payload)
    tampered = json.dumps({**json.loads(payload), "type": "invoice.payment_failed"})

    with pytest.raises(SignatureInvalidError):
        client.verify_webhook(tampered.encode("utf-8"), signature)
