"""Tag repository for database operations."""

from collections.abc import Collection

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Tag
from repositories.utils import log_slow_query


class TagRepository:
    """Repository for Tag database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("tags.list_all")
    async def list_all(self) -> list[Tag]:
        result = await self.db.execute(select(Tag).order_by(Tag.name))
        return list(result.scalars().all())

    async def get_by_id(self, tag_id: str) -> Tag | None:
        result = await self.db.execute(select(Tag).where(Tag.id == tag_id))
        return result.scalar_one_or_none()

    async def name_exists(self, name: str, *, exclude_id: str | None = None) -> bool:
        """Check whether another tag already uses ``name``."""
        condition = Tag.name == name
        if exclude_id is not None:
            condition = condition & (Tag.id != exclude_id)
        result = await self.db.execute(select(exists().where(condition)))
        return bool(result.scalar())

    @log_slow_query("tags.get_existing_ids")
    async def get_existing_ids(self, tag_ids: Collection[str]) -> set[str]:
        """Return the subset of ``tag_ids`` that exist."""
        if not tag_ids:
            return set()
        result = await self.db.execute(select(Tag.id).where(Tag.id.in_(tag_ids)))
        return set(result.scalars().all())

    async def add(self, tag: Tag) -> Tag:
        """Stage a new tag. Does NOT commit."""
        self.db.add(tag)
        await self.db.flush()
        return tag

    async def delete(self, tag: Tag) -> None:
        await self.db.delete(tag)
        await self.db.flush()
