"""Subscription plan model."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from smallbizagent.models._base import Base


class SubscriptionPlan(Base):
    """A purchasable plan and its Stripe product/price mapping."""

    __tablename__ = "subscription_plans"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    interval: Mapped[str] = mapped_column(String(20), nullable=False)  # monthly, yearly
    features: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    stripe_product_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_price_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Usage allowances, read by the usage meter
    plan_tier: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    max_call_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    overage_rate_per_minute: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 4), nullable=True
    )
    max_staff: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
