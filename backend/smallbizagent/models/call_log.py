"""Call log model, written by the virtual receptionist and read by the usage meter."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from smallbizagent.models._base import Base


class CallLog(Base):
    """A single handled phone call."""

    __tablename__ = "call_logs"

    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    call_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    call_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # seconds
    caller_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    __table_args__ = (Index("idx_call_logs_business_time", "business_id", "call_time"),)
