from typing import Generic, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Common lookups shared by every repository."""

    model: type[ModelT]

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, entity_id: str) -> Optional[ModelT]:
        result = await self.db.execute(select(self.model).where(self.model.id == entity_id))
        return result.scalar_one_or_none()

    async def count(self, *criteria) -> int:
        query = select(func.count()).select_from(self.model)
        if criteria:
            query = query.where(*criteria)
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def delete(self, entity_id: str) -> bool:
        """Delete by id; child rows go through the database's ON DELETE CASCADE."""
        entity = await self.find_by_id(entity_id)
        if entity is None:
            return False
        await self.db.delete(entity)
        await self.db.flush()
        return True

    def _apply(self, entity: ModelT, data: dict, fields: tuple[str, ...]) -> ModelT:
        for field in fields:
            if field in data and data[field] is not None:
                setattr(entity, field, data[field])
        return entity
