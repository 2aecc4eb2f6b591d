"""Habit repository for database operations."""

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.pagination import paginate
from models import Habit, HabitStatus, HabitTag, HabitType
from repositories.utils import log_slow_query


class HabitRepository:
    """Repository for Habit and HabitTag database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def build_list_query(
        self,
        *,
        search: str | None = None,
        habit_type: HabitType | None = None,
        status: HabitStatus | None = None,
    ) -> Select[tuple[Habit]]:
        """Filtered, unordered select over habits.

        ``search`` is expected lowercase; it matches name or description.
        """
        query = select(Habit)
        if search:
            query = query.where(
                or_(
                    func.lower(Habit.name).contains(search, autoescape=True),
                    func.lower(Habit.description).contains(search, autoescape=True),
                )
            )
        if habit_type is not None:
            query = query.where(Habit.type == habit_type)
        if status is not None:
            query = query.where(Habit.status == status)
        return query

    @log_slow_query("habits.list_page")
    async def list_page(
        self, query: Select[tuple[Habit]], page: int, page_size: int
    ) -> tuple[list[Habit], int]:
        """Return one page of ``query`` and the total count of its rows."""
        return await paginate(self.db, query, page, page_size)

    async def get_by_id(self, habit_id: str) -> Habit | None:
        result = await self.db.execute(select(Habit).where(Habit.id == habit_id))
        return result.scalar_one_or_none()

    @log_slow_query("habits.get_with_tags")
    async def get_with_tags(self, habit_id: str) -> Habit | None:
        """Get a habit with its tag associations (and tags) eagerly loaded."""
        result = await self.db.execute(
            select(Habit)
            .where(Habit.id == habit_id)
            .options(selectinload(Habit.habit_tags).selectinload(HabitTag.tag))
        )
        return result.scalar_one_or_none()

    async def add(self, habit: Habit) -> Habit:
        """Stage a new habit. Does NOT commit."""
        self.db.add(habit)
        await self.db.flush()
        return habit

    async def delete(self, habit: Habit) -> None:
        await self.db.delete(habit)
        await self.db.flush()

    @log_slow_query("habits.delete_habit_tag")
    async def delete_habit_tag(self, habit_id: str, tag_id: str) -> bool:
        """Remove one habit/tag association. Returns False if none existed."""
        result = await self.db.execute(
            delete(HabitTag).where(
                HabitTag.habit_id == habit_id,
                HabitTag.tag_id == tag_id,
            )
        )
        return result.rowcount > 0
