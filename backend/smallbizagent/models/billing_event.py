"""Billing event model for audit trail."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from smallbizagent.models._base import Base


class BillingEvent(Base):
    """Audit log of processed Stripe webhook events."""

    __tablename__ = "billing_events"

    business_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("businesses.id", ondelete="SET NULL"), nullable=True
    )

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    stripe_event_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # applied, stale, unmatched, ignored
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    event_created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )

    event_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_billing_events_business", "business_id"),
        Index("idx_billing_events_type", "event_type"),
    )
