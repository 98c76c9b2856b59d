"""Business model, restricted to the columns the billing core owns or reads."""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smallbizagent.models._base import Base

if TYPE_CHECKING:
    from smallbizagent.models.subscription_plan import SubscriptionPlan


class Business(Base):
    """Business with its cached Stripe billing state."""

    __tablename__ = "businesses"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Stripe IDs
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True
    )
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True
    )

    subscription_plan_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"), nullable=True
    )
    subscription_status: Mapped[str] = mapped_column(String(32), default="none", nullable=False)
    subscription_start_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    current_period_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Time of the newest provider observation applied to this row
    billing_event_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    # Bumped on every write to the billing columns
    billing_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    plan: Mapped[Optional["SubscriptionPlan"]] = relationship("SubscriptionPlan", lazy="noload")
