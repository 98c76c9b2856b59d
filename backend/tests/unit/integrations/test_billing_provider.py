"""Unit tests for normalizing Stripe payloads."""

from datetime import datetime, timezone

import pytest

from smallbizagent.core.exceptions import BillingNotConfiguredError
from smallbizagent.integrations.billing_provider import (
    DisabledBillingProvider,
    ProviderEvent,
    ProviderInvoice,
    ProviderSubscription,
)

PERIOD_END = 1790000000
PERIOD_END_AT = datetime.fromtimestamp(PERIOD_END, tz=timezone.utc).replace(tzinfo=None)


def test_subscription_from_classic_payload():
    """Test the top-level period end and the payment intent secret are read."""
    subscription = ProviderSubscription.from_stripe(
        {
            "id": "sub_1",
            "customer": "cus_1",
            "status": "trialing",
            "cancel_at_period_end": True,
            "current_period_end": PERIOD_END,
            "trial_end": PERIOD_END,
            "latest_invoice": {"payment_intent": {"client_secret": "pi_1_secret"}},
            "metadata": {"business_id": "7"},
        }
    )

    assert subscription.id == "sub_1"
    assert subscription.customer_id == "cus_1"
    assert subscription.cancel_at_period_end is True
    assert subscription.current_period_end == PERIOD_END_AT
    assert subscription.trial_end == PERIOD_END_AT
    assert subscription.client_secret == "pi_1_secret"
    assert subscription.metadata == {"business_id": "7"}


def test_subscription_from_item_level_payload():
    """Test newer payloads with period ends on the items and a confirmation secret."""
    subscription = ProviderSubscription.from_stripe(
        {
            "id": "sub_2",
            "customer": {"id": "cus_2", "object": "customer"},
            "status": "incomplete",
            "items": {
                "data": [
                    {"current_period_end": PERIOD_END - 10},
                    {"current_period_end": PERIOD_END},
                ]
            },
            "latest_invoice": {"confirmation_secret": {"client_secret": "cs_2_secret"}},
        }
    )

    assert subscription.customer_id == "cus_2"
    assert subscription.current_period_end == PERIOD_END_AT
    assert subscription.client_secret == "cs_2_secret"
    assert subscription.cancel_at_period_end is False
    assert subscription.metadata == {}


def test_subscription_with_unexpanded_invoice_has_no_secret():
    """Test an invoice id instead of an expanded invoice yields no client secret."""
    subscription = ProviderSubscription.from_stripe(
        {"id": "sub_3", "customer": "cus_3", "status": "active", "latest_invoice": "in_3"}
    )

    assert subscription.client_secret is None
    assert subscription.current_period_end is None


def test_invoice_subscription_from_parent():
    """Test the subscription id is read from the invoice parent in newer payloads."""
    invoice = ProviderInvoice.from_stripe(
        {
            "id": "in_1",
            "customer": "cus_1",
            "parent": {"subscription_details": {"subscription": "sub_1"}},
            "attempt_count": 2,
            "last_finalization_error": {"message": "Card declined"},
        }
    )

    assert invoice.subscription_id == "sub_1"
    assert invoice.attempt_count == 2
    assert invoice.failure_message == "Card declined"
    assert invoice.is_overage is False


def test_overage_invoice():
    """Test overage invoices are recognised by their metadata."""
    invoice = ProviderInvoice.from_stripe(
        {"id": "in_2", "customer": "cus_1", "metadata": {"type": "overage"}}
    )

    assert invoice.is_overage is True
    assert invoice.subscription_id is None


def test_invoice_failure_from_expanded_payment_intent():
    """Test the decline reason of an expanded payment intent is preferred."""
    invoice = ProviderInvoice.from_stripe(
        {
            "id": "in_1",
            "customer": "cus_1",
            "payment_intent": {
                "id": "pi_1",
                "last_payment_error": {"message": "Your card has insufficient funds."},
            },
            "last_finalization_error": None,
        }
    )

    assert invoice.payment_intent_id == "pi_1"
    assert invoice.failure_message == "Your card has insufficient funds."


def test_invoice_with_unexpanded_payment_intent():
    """Test an unexpanded payment intent leaves only its id."""
    invoice = ProviderInvoice.from_stripe(
        {"id": "in_1", "customer": "cus_1", "payment_intent": "pi_1"}
    )

    assert invoice.payment_intent_id == "pi_1"
    assert invoice.failure_message is None


def test_event_from_payload():
    """Test the envelope fields of an event."""
    event = ProviderEvent.from_payload(
        {
            "id": "evt_1",
            "type": "invoice.paid",
            "created": PERIOD_END,
            "data": {"object": {"id": "in_1"}},
        }
    )

    assert event.id == "evt_1"
    assert event.type == "invoice.paid"
    assert event.created == PERIOD_END_AT
    assert event.data_object == {"id": "in_1"}


async def test_disabled_provider_refuses_everything():
    """Test the disabled provider raises instead of calling Stripe."""
    provider = DisabledBillingProvider()

    assert provider.configured is False
    with pytest.raises(BillingNotConfiguredError):
        await provider.get_subscription("sub_1")
    with pytest.raises(BillingNotConfiguredError):
        provider.verify_webhook(b"{}", "t=1,v1=abc")
