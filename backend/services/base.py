"""Base service for the engine's SQLAlchemy repositories.

Each public call opens its own short-lived session from the factory and
commits before returning. The engine re-fetches a contact before every
mutation and condition, so every read has to see the latest committed
row rather than a session-cached copy.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Generic, Optional, Sequence, Type, TypeVar
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """Generic record access for one SQLAlchemy model.

    Usage:
        class ContactService(BaseService[ContactRecord]):
            def __init__(self, session_factory):
                super().__init__(ContactRecord, session_factory)
    """

    def __init__(self, model: Type[ModelType], session_factory: async_sessionmaker[AsyncSession]):
        self.model = model
        self.session_factory = session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session that commits on success and rolls back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # ─── Read ──────────────────────────────────────────────

    async def get_record(self, id: str) -> Optional[ModelType]:
        async with self.session() as session:
            return await session.get(self.model, id)

    async def list_records(
        self,
        filters: Optional[dict[str, Any]] = None,
        order_by: str = "created_at",
        limit: Optional[int] = None,
    ) -> Sequence[ModelType]:
        """List records matching equality filters (lists become IN)."""
        query = select(self.model)
        for field, value in (filters or {}).items():
            col = getattr(self.model, field)
            query = query.where(col.in_(value) if isinstance(value, (list, tuple, set)) else col == value)
        if hasattr(self.model, order_by):
            query = query.order_by(getattr(self.model, order_by))
        if limit is not None:
            query = query.limit(limit)

        async with self.session() as session:
            result = await session.execute(query)
            return result.scalars().all()

    # ─── Write ─────────────────────────────────────────────

    async def create(self, data: dict[str, Any]) -> ModelType:
        data = dict(data)
        data.setdefault("id", str(uuid4()))
        async with self.session() as session:
            instance = self.model(**data)
            session.add(instance)
            await session.flush()
            await session.refresh(instance)
            return instance

    async def update_fields(self, id: str, data: dict[str, Any]) -> Optional[ModelType]:
        """Set columns on one record. Unknown keys are ignored."""
        async with self.session() as session:
            instance = await session.get(self.model, id)
            if instance is None:
                return None
            for key, value in data.items():
                if hasattr(instance, key):
                    setattr(instance, key, value)
            await session.flush()
            await session.refresh(instance)
            return instance
