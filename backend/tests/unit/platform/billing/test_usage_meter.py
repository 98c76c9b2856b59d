"""Unit tests for usage periods and usage counters."""

from datetime import datetime, timedelta
from decimal import Decimal

from smallbizagent.core.datetime_utils import utc_now_naive
from smallbizagent.models import CallLog
from smallbizagent.platform.billing.usage_meter import (
    TRIAL_MINUTES,
    CallLogUsageMeter,
    billing_period,
)
from tests.fixtures.common import make_business, make_plan


def test_billing_period_without_subscription_is_calendar_month():
    """Test the period starts on the first of the month when there is no subscription."""
    start, end = billing_period(None, datetime(2026, 10, 17, 9, 30))

    assert start == datetime(2026, 10, 1)
    assert end == datetime(2026, 11, 1)


def test_billing_period_anchored_on_start_day():
    """Test the period is anchored on the subscription's day of month."""
    start, end = billing_period(datetime(2026, 3, 20), datetime(2026, 10, 17))

    assert start == datetime(2026, 9, 20)
    assert end == datetime(2026, 10, 20)


def test_billing_period_clamps_short_months():
    """Test an anchor on the 31st falls back to the month's last day."""
    start, end = billing_period(datetime(2026, 1, 31), datetime(2026, 2, 15))

    assert start == datetime(2026, 1, 31)
    assert end == datetime(2026, 2, 28)

    start, end = billing_period(datetime(2026, 1, 31), datetime(2026, 3, 5))

    assert start == datetime(2026, 2, 28)
    assert end == datetime(2026, 3, 31)


def test_billing_period_crosses_year():
    """Test a period spanning the new year."""
    start, end = billing_period(datetime(2026, 6, 15), datetime(2027, 1, 3))

    assert start == datetime(2026, 12, 15)
    assert end == datetime(2027, 1, 15)


async def test_usage_of_subscribed_business(db_session):
    """Test overage minutes and cost for a subscribed business over its allowance."""
    plan = make_plan(max_call_minutes=10, overage_rate_per_minute=Decimal("0.12"))
    db_session.add(plan)
    await db_session.flush()
    business = make_business(subscription_plan_id=plan.id, subscription_status="active")
    db_session.add(business)
    await db_session.flush()

    now = utc_now_naive()
    db_session.add_all(
        [
            # 841 seconds in the period round up to 15 minutes
            CallLog(
                business_id=business.id, call_time=now - timedelta(seconds=30), call_duration=541
            ),
            CallLog(
                business_id=business.id, call_time=now - timedelta(seconds=10), call_duration=300
            ),
            CallLog(
                business_id=business.id, call_time=now - timedelta(days=40), call_duration=6000
            ),
        ]
    )
    await db_session.commit()

    usage = await CallLogUsageMeter().get_usage(db_session, business)

    assert usage.minutes_used == 15
    assert usage.minutes_included == 10
    assert usage.minutes_remaining == 0
    assert usage.overage_minutes == 5
    assert usage.overage_cost == Decimal("0.60")
    assert usage.percent_used == 100
    assert usage.plan_name == "Professional"
    assert usage.can_accept_calls is True


async def test_usage_of_trial_business(db_session):
    """Test a business on a free trial gets the trial allowance without overage pricing."""
    business = make_business(trial_ends_at=utc_now_naive() + timedelta(days=7))
    db_session.add(business)
    await db_session.commit()

    usage = await CallLogUsageMeter().get_usage(db_session, business)

    assert usage.minutes_used == 0
    assert usage.minutes_included == TRIAL_MINUTES
    assert usage.plan_name == "Free Trial"
    assert usage.is_trial_active is True
    assert usage.overage_cost == Decimal("0.00")
    assert usage.can_accept_calls is True


async def test_usage_without_plan_or_trial(db_session):
    """Test a business with neither trial nor subscription cannot accept calls."""
    business = make_business()
    db_session.add(business)
    await db_session.commit()

    usage = await CallLogUsageMeter().get_usage(db_session, business)

    assert usage.plan_name == "No Plan"
    assert usage.minutes_included == 0
    assert usage.percent_used == 0
    assert usage.can_accept_calls is False
