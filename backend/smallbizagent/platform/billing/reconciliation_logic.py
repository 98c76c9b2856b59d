"""Pure functions deciding how provider observations map onto local billing state.

No database or Stripe access happens here; the webhook processor and the billing
service feed in what they observed and write what these functions return.
"""

from datetime import datetime
from typing import Optional

from smallbizagent.core.datetime_utils import utc_now_naive
from smallbizagent.integrations.billing_provider import ProviderSubscription
from smallbizagent.schemas.business_billing import (
    LIVE_STATUSES,
    BusinessBillingState,
    BusinessBillingUpdate,
    SubscriptionStatus,
)

_PROVIDER_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}


def map_provider_status(provider_status: str, cancel_at_period_end: bool) -> SubscriptionStatus:
    """Map a Stripe subscription status onto the local status enum.

    A running subscription scheduled to end becomes ``canceling``. ``incomplete``
    (created, first payment not yet confirmed) is reported as ``past_due``: a
    payment is outstanding. Anything unrecognised becomes ``error``.
    """
    status = _PROVIDER_STATUS_MAP.get(provider_status, SubscriptionStatus.ERROR)
    if cancel_at_period_end and status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING):
        return SubscriptionStatus.CANCELING
    return status


def observation_time() -> datetime:
    """The current time as an observation timestamp, in whole seconds.

    Stripe event timestamps have one-second resolution; local observations are
    truncated to match so an event created in the same second still compares equal.
    """
    return utc_now_naive().replace(microsecond=0)


def is_fresh(observed_at: datetime, last_applied_at: Optional[datetime]) -> bool:
    """Whether an observation is not older than the last one applied.

    Observations with the same timestamp are applied: Stripe timestamps have
    one-second resolution and same-second events must not be dropped.
    """
    return last_applied_at is None or observed_at >= last_applied_at


def forward_period_end(
    current: Optional[datetime], incoming: Optional[datetime]
) -> Optional[datetime]:
    """Return the later of two period ends, ignoring a missing incoming value."""
    if incoming is None:
        return current
    if current is None:
        return incoming
    return max(current, incoming)


def subscription_update(
    subscription: ProviderSubscription,
    current: BusinessBillingState,
    *,
    rewind_period_end: bool = False,
) -> BusinessBillingUpdate:
    """Build the billing columns that reflect a provider subscription.

    Args:
        subscription: The observed provider subscription.
        current: The cached state it is applied to.
        rewind_period_end: Take the provider's period end as-is, for a subscription
            that was just created. Webhook paths keep the period end moving forward.
    """
    if rewind_period_end:
        period_end = subscription.current_period_end or current.current_period_end
    else:
        period_end = forward_period_end(current.current_period_end, subscription.current_period_end)

    return BusinessBillingUpdate(
        stripe_subscription_id=subscription.id,
        subscription_status=map_provider_status(
            subscription.status, subscription.cancel_at_period_end
        ),
        current_period_end=period_end,
        trial_ends_at=subscription.trial_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
    )


def deleted_subscription_update() -> BusinessBillingUpdate:
    """Build the billing columns for a subscription the provider has ended."""
    return BusinessBillingUpdate(
        subscription_status=SubscriptionStatus.CANCELED,
        cancel_at_period_end=False,
    )


def can_adopt(
    current: BusinessBillingState,
    subscription: ProviderSubscription,
) -> bool:
    """Whether an unmatched subscription may be attached to a business found via metadata.

    This closes the gap left when the local write after creating a subscription
    failed: the customer must match, and the business must not already be bound
    to a different subscription that is still running.
    """
    if not subscription.customer_id or current.stripe_customer_id != subscription.customer_id:
        return False
    if current.stripe_subscription_id in (None, subscription.id):
        return True
    return current.status not in LIVE_STATUSES


def overage_failure_reason(failure_message: Optional[str], attempt_count: int) -> str:
    """Describe why an overage invoice payment failed; never empty."""
    if failure_message:
        return failure_message
    if attempt_count:
        return f"Payment failed (attempt {attempt_count})"
    return "Payment failed"
