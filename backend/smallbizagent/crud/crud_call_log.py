"""Read-only queries over call logs."""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent.models.call_log import CallLog


class CRUDCallLog:
    """Aggregates over the receptionist's call log."""

    async def total_duration_seconds(
        self, db: AsyncSession, business_id: int, since: datetime
    ) -> int:
        """Sum the call durations of a business since a point in time."""
        result = await db.execute(
            select(func.coalesce(func.sum(CallLog.call_duration), 0)).where(
                CallLog.business_id == business_id,
                CallLog.call_time >= since,
            )
        )
        return int(result.scalar_one())


call_log = CRUDCallLog()
