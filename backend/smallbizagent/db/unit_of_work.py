"""Unit of work for grouping several writes into one transaction."""

from types import TracebackType
from typing import Optional, Type

from sqlalchemy.ext.asyncio import AsyncSession


class UnitOfWork:
    """Transaction boundary around an AsyncSession.

    CRUD methods that receive a ``uow`` skip their own commit; the unit of work
    commits once on a clean exit and rolls back when the block raises.

    Example:
    -------
        async with UnitOfWork(db) as uow:
            await crud.overage_charge.settle(db, stripe_invoice_id=..., status=..., uow=uow)
            await crud.billing_event.create(db, obj_in=event_in, uow=uow)

    """

    def __init__(self, session: AsyncSession):
        """Bind the unit of work to a session."""
        self.session = session
        self._committed = False

    async def __aenter__(self) -> "UnitOfWork":
        """Enter the transaction block."""
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        """Commit on success, roll back on error."""
        if exc_type is not None:
            await self.rollback()
            return
        if not self._committed:
            await self.commit()

    async def commit(self) -> None:
        """Commit the session."""
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        """Roll back the session."""
        await self.session.rollback()

    async def flush(self) -> None:
        """Flush pending changes without committing."""
        await self.session.flush()
