"""Base CRUD class for the billing tables."""

from typing import Any, Generic, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from smallbizagent.db.unit_of_work import UnitOfWork
from smallbizagent.models._base import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class CRUDBaseSystem(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """CRUD base class without user or business scoping.

    The billing core is called by the API layer, which has already authorized the
    caller, and by Stripe webhooks, which have no user at all.

    Writes commit on their own unless a ``uow`` is passed, in which case they only
    flush and the unit of work decides.
    """

    def __init__(self, model: Type[ModelType]):
        """Bind the CRUD object to its model."""
        self.model = model

    async def _finish(self, db: AsyncSession, uow: Optional[UnitOfWork], *objs: ModelType) -> None:
        if uow is not None:
            await db.flush()
            return
        await db.commit()
        for obj in objs:
            await db.refresh(obj)

    async def get(self, db: AsyncSession, id: int) -> Optional[ModelType]:
        """Get a row by id, overwriting any stale copy already in the session."""
        result = await db.execute(
            select(self.model).where(self.model.id == id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: Union[CreateSchemaType, dict[str, Any]],
        uow: Optional[UnitOfWork] = None,
    ) -> ModelType:
        """Insert a row.

        Args:
        ----
            db (AsyncSession): The database session.
            obj_in (CreateSchemaType | dict): The values of the new row.
            uow (UnitOfWork, optional): Unit of work for transaction control.
                If not provided, auto-commits the transaction.

        Returns:
        -------
            ModelType: The created row, with its id assigned.

        """
        values = obj_in if isinstance(obj_in, dict) else obj_in.model_dump()
        db_obj = self.model(**values)
        db.add(db_obj)
        await self._finish(db, uow, db_obj)
        return db_obj

    async def create_many(
        self,
        db: AsyncSession,
        objs_in: list[CreateSchemaType],
        uow: Optional[UnitOfWork] = None,
    ) -> list[ModelType]:
        """Insert several rows in one transaction."""
        db_objs = [self.model(**obj_in.model_dump()) for obj_in in objs_in]
        db.add_all(db_objs)
        await self._finish(db, uow, *db_objs)
        return db_objs

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, dict[str, Any]],
        uow: Optional[UnitOfWork] = None,
    ) -> ModelType:
        """Apply the set fields of ``obj_in`` to a loaded row.

        Unknown keys are ignored. Billing columns of businesses never go through
        here; see ``CRUDBusiness.update_billing``.
        """
        changes = obj_in if isinstance(obj_in, dict) else obj_in.model_dump(exclude_unset=True)
        for key, value in changes.items():
            if hasattr(db_obj, key):
                setattr(db_obj, key, value)
        db.add(db_obj)
        await self._finish(db, uow, db_obj)
        return db_obj
