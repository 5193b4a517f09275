"""
Base repository.

Generic lookups shared by all aggregates. Balance and grant mutations
that must be race-free live on the concrete repositories as conditional
UPDATE statements; this class only reads, inserts and row-locks.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository over one mapped model.

    Example:
        class UserRepository(BaseRepository[User]):
            def __init__(self, session: AsyncSession):
                super().__init__(User, session)
    """

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    def _select(self, **filters: Any) -> Select:
        return select(self.model).filter_by(**filters)

    async def get_by_id(self, id: int) -> ModelType | None:
        """Get entity by primary key (identity map first)."""
        return await self.session.get(self.model, id)

    async def get_by(self, **filters: Any) -> ModelType | None:
        """Get the single entity matching column filters."""
        result = await self.session.execute(self._select(**filters))
        return result.scalar_one_or_none()

    async def get_for_update(self, id: int) -> ModelType | None:
        """
        Get entity by ID with a row lock.

        Always re-reads the row so state cached in the identity map by an
        earlier read is replaced with what the database holds now.
        """
        stmt = (
            self._select()
            .where(self.model.id == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **data: Any) -> ModelType:
        """Insert an entity and return it with server defaults loaded."""
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def count(self, **filters: Any) -> int:
        """Count entities matching column filters."""
        stmt = select(func.count()).select_from(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def exists(self, **filters: Any) -> bool:
        """Whether any entity matches column filters."""
        stmt = select(self._select(**filters).exists())
        result = await self.session.execute(stmt)
        return bool(result.scalar())

    async def find_paginated(
        self, page: int = 1, per_page: int = 100, **filters: Any
    ) -> tuple[list[ModelType], int]:
        """
        Newest-first page of entities matching column filters.

        Args:
            page: Page number (1-indexed)
            per_page: Items per page
            **filters: Column filters

        Returns:
            Tuple of (items, total_count)
        """
        page = max(page, 1)
        stmt = (
            self._select(**filters)
            .order_by(self.model.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), await self.count(**filters)
