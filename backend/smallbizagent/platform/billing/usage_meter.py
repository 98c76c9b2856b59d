"""Usage meter: current-period AI receptionist minutes of a business.

The meter only reads. Call durations are written to ``call_logs`` by the voice
integration; overage invoices are issued elsewhere from the same numbers.
"""

import calendar
import math
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent import crud, schemas
from smallbizagent.core.datetime_utils import utc_now_naive
from smallbizagent.models import Business, SubscriptionPlan

TRIAL_MINUTES = 50

SUBSCRIBED_STATUSES = frozenset(
    {
        schemas.SubscriptionStatus.ACTIVE.value,
        schemas.SubscriptionStatus.TRIALING.value,
        schemas.SubscriptionStatus.CANCELING.value,
    }
)


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _on_day(year: int, month: int, day: int) -> datetime:
    """Midnight on the given day, clamped to the last day of short months."""
    return datetime(year, month, min(day, calendar.monthrange(year, month)[1]))


def billing_period(
    subscription_start: Optional[datetime], now: Optional[datetime] = None
) -> tuple[datetime, datetime]:
    """Return the [start, end) of the monthly usage period containing ``now``.

    Periods are anchored on the day of month the subscription started, or on the
    first of the month when there is no subscription.
    """
    now = now or utc_now_naive()
    anchor_day = subscription_start.day if subscription_start else 1

    start = _on_day(now.year, now.month, anchor_day)
    if start > now:
        year, month = _shift_month(now.year, now.month, -1)
        start = _on_day(year, month, anchor_day)

    year, month = _shift_month(start.year, start.month, 1)
    return start, _on_day(year, month, anchor_day)


class UsageMeter(ABC):
    """Supplies current-period usage counters for a business."""

    @abstractmethod
    async def get_usage(self, db: AsyncSession, business: Business) -> schemas.UsageInfo:
        """Compute the usage counters of a business."""


class CallLogUsageMeter(UsageMeter):
    """Usage meter backed by the receptionist call log."""

    async def minutes_used(self, db: AsyncSession, business_id: int, since: datetime) -> int:
        """Total call minutes since ``since``; partial minutes count as full."""
        seconds = await crud.call_log.total_duration_seconds(db, business_id, since)
        return math.ceil(seconds / 60)

    async def get_usage(self, db: AsyncSession, business: Business) -> schemas.UsageInfo:
        """Compute the usage counters of a business."""
        now = utc_now_naive()
        status = business.subscription_status or schemas.SubscriptionStatus.NONE.value
        is_trial_active = bool(business.trial_ends_at and business.trial_ends_at > now)
        is_subscribed = status in SUBSCRIBED_STATUSES

        plan: Optional[SubscriptionPlan] = None
        if business.subscription_plan_id:
            plan = await crud.subscription_plan.get(db, id=business.subscription_plan_id)

        minutes_included = 0
        overage_rate = Decimal("0")
        plan_name = "No Plan"
        plan_tier = None
        if is_trial_active and not is_subscribed:
            minutes_included = TRIAL_MINUTES
            plan_name = "Free Trial"
            plan_tier = "trial"
        elif is_subscribed and plan:
            minutes_included = plan.max_call_minutes or 0
            overage_rate = Decimal(plan.overage_rate_per_minute or 0)
            plan_name = plan.name
            plan_tier = plan.plan_tier

        period_start, period_end = billing_period(business.subscription_start_date, now)
        minutes_used = await self.minutes_used(db, business.id, period_start)
        overage_minutes = max(0, minutes_used - minutes_included)
        percent_used = (
            min(100, round(minutes_used / minutes_included * 100)) if minutes_included else 0
        )

        return schemas.UsageInfo(
            minutes_used=minutes_used,
            minutes_included=minutes_included,
            minutes_remaining=max(0, minutes_included - minutes_used),
            overage_minutes=overage_minutes,
            overage_rate=overage_rate,
            overage_cost=(overage_rate * overage_minutes).quantize(Decimal("0.01")),
            percent_used=percent_used,
            plan_name=plan_name,
            plan_tier=plan_tier,
            is_trial_active=is_trial_active,
            trial_ends_at=business.trial_ends_at,
            subscription_status=status,
            can_accept_calls=is_trial_active or is_subscribed,
            period_start=period_start,
            period_end=period_end,
        )
