"""Unit tests for the reconciliation rules."""

from datetime import datetime, timedelta

import pytest

from smallbizagent.integrations.billing_provider import ProviderSubscription
from smallbizagent.platform.billing.reconciliation_logic import (
    can_adopt,
    deleted_subscription_update,
    forward_period_end,
    is_fresh,
    map_provider_status,
    overage_failure_reason,
    subscription_update,
)
from smallbizagent.schemas import BusinessBillingState, SubscriptionStatus

NOW = datetime(2026, 10, 1, 12, 0, 0)


def _state(**overrides) -> BusinessBillingState:
    values = {"business_id": 1, "stripe_customer_id": "cus_1"}
    values.update(overrides)
    return BusinessBillingState(**values)


def _subscription(**overrides) -> ProviderSubscription:
    values = {"id": "sub_1", "customer_id": "cus_1", "status": "active"}
    values.update(overrides)
    return ProviderSubscription(**values)


@pytest.mark.parametrize(
    "provider_status, cancel_at_period_end, expected",
    [
        ("active", False, SubscriptionStatus.ACTIVE),
        ("active", True, SubscriptionStatus.CANCELING),
        ("trialing", False, SubscriptionStatus.TRIALING),
        ("trialing", True, SubscriptionStatus.CANCELING),
        ("past_due", False, SubscriptionStatus.PAST_DUE),
        ("past_due", True, SubscriptionStatus.PAST_DUE),
        ("unpaid", False, SubscriptionStatus.PAST_DUE),
        ("incomplete", False, SubscriptionStatus.PAST_DUE),
        ("canceled", False, SubscriptionStatus.CANCELED),
        ("incomplete_expired", False, SubscriptionStatus.CANCELED),
        ("something_new", False, SubscriptionStatus.ERROR),
    ],
)
def test_map_provider_status(provider_status, cancel_at_period_end, expected):
    """Test every provider status maps onto exactly one local status."""
    assert map_provider_status(provider_status, cancel_at_period_end) == expected


def test_is_fresh():
    """Test observations at or after the last applied one are fresh."""
    assert is_fresh(NOW, None)
    assert is_fresh(NOW, NOW)
    assert is_fresh(NOW + timedelta(seconds=1), NOW)
    assert not is_fresh(NOW - timedelta(seconds=1), NOW)


def test_forward_period_end_never_moves_back():
    """Test the period end only moves forward."""
    later = NOW + timedelta(days=30)
    assert forward_period_end(None, NOW) == NOW
    assert forward_period_end(NOW, None) == NOW
    assert forward_period_end(NOW, later) == later
    assert forward_period_end(later, NOW) == later


def test_subscription_update_keeps_later_period_end():
    """Test a webhook carrying an older period end does not rewind it."""
    later = NOW + timedelta(days=30)
    update = subscription_update(
        _subscription(current_period_end=NOW), _state(current_period_end=later)
    )

    assert update.current_period_end == later
    assert update.subscription_status == SubscriptionStatus.ACTIVE
    assert update.stripe_subscription_id == "sub_1"
    assert update.cancel_at_period_end is False


def test_subscription_update_rewind_takes_provider_value():
    """Test a freshly created subscription replaces the stored period end."""
    later = NOW + timedelta(days=30)
    update = subscription_update(
        _subscription(current_period_end=NOW),
        _state(current_period_end=later),
        rewind_period_end=True,
    )

    assert update.current_period_end == NOW


def test_subscription_update_canceling():
    """Test a scheduled cancellation is reported as canceling."""
    update = subscription_update(_subscription(cancel_at_period_end=True), _state())

    assert update.subscription_status == SubscriptionStatus.CANCELING
    assert update.cancel_at_period_end is True


def test_deleted_subscription_update():
    """Test a deleted subscription is canceled and no longer scheduled to end."""
    update = deleted_subscription_update()

    assert update.subscription_status == SubscriptionStatus.CANCELED
    assert update.cancel_at_period_end is False
    assert "stripe_subscription_id" not in update.model_dump(exclude_unset=True)


def test_can_adopt_requires_matching_customer():
    """Test adoption is refused when the customer differs."""
    assert not can_adopt(_state(stripe_customer_id="cus_other"), _subscription())
    assert not can_adopt(_state(), _subscription(customer_id=None))


def test_can_adopt_unbound_or_same_subscription():
    """Test a business without a subscription, or with the same one, adopts."""
    assert can_adopt(_state(), _subscription())
    assert can_adopt(
        _state(stripe_subscription_id="sub_1", status=SubscriptionStatus.ACTIVE),
        _subscription(),
    )


def test_can_adopt_refuses_to_replace_live_subscription():
    """Test a running subscription is never replaced, an ended one is."""
    live = _state(stripe_subscription_id="sub_old", status=SubscriptionStatus.ACTIVE)
    ended = _state(stripe_subscription_id="sub_old", status=SubscriptionStatus.CANCELED)

    assert not can_adopt(live, _subscription())
    assert can_adopt(ended, _subscription())


def test_overage_failure_reason_is_never_empty():
    """Test a failed overage payment always has a reason."""
    assert overage_failure_reason("Your card was declined.", 1) == "Your card was declined."
    assert overage_failure_reason(None, 3) == "Payment failed (attempt 3)"
    assert overage_failure_reason(None, 0) == "Payment failed"
