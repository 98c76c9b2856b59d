"""Overage charge model."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from smallbizagent.models._base import Base


class OverageCharge(Base):
    """A usage-based charge invoiced through Stripe for one billing period."""

    __tablename__ = "overage_charges"

    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )

    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    minutes_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minutes_included: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overage_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overage_rate: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False, default=0)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    stripe_invoice_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    stripe_invoice_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    plan_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    plan_tier: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        UniqueConstraint("business_id", "period_start", name="uq_overage_business_period"),
        Index("idx_overage_charges_business", "business_id"),
    )
