"""Habit/tag association service."""

import logging
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from core.observability import record_write
from core.wide_event import set_wide_event_fields
from models import HabitTag
from repositories.habit_repository import HabitRepository
from repositories.tag_repository import TagRepository
from services.habits_service import HabitNotFoundError

logger = logging.getLogger(__name__)


class InvalidTagIdsError(Exception):
    """Raised when an upsert references tags that do not exist."""

    def __init__(self, missing_ids: Sequence[str]):
        super().__init__("One or more tag IDs is invalid")
        self.missing_ids = list(missing_ids)


class HabitTagNotFoundError(Exception):
    """Raised when removing a tag that is not linked to the habit."""

    def __init__(self, habit_id: str, tag_id: str):
        super().__init__(f"Tag {tag_id} is not linked to habit {habit_id}")
        self.habit_id = habit_id
        self.tag_id = tag_id


async def upsert_habit_tags(
    db: AsyncSession, habit_id: str, tag_ids: Sequence[str]
) -> bool:
    """Replace the set of tags linked to a habit.

    Returns:
        False when the requested set equals the current one (nothing to do),
        True when links were added or removed.

    Raises:
        HabitNotFoundError: unknown habit id
        InvalidTagIdsError: any of ``tag_ids`` does not exist
    """
    set_wide_event_fields(habit_id=habit_id, tags_requested=len(tag_ids))
    habit = await HabitRepository(db).get_with_tags(habit_id)
    if habit is None:
        raise HabitNotFoundError(habit_id)

    requested = set(tag_ids)
    current = {habit_tag.tag_id for habit_tag in habit.habit_tags}
    if requested == current:
        return False

    existing = await TagRepository(db).get_existing_ids(requested)
    if existing != requested:
        raise InvalidTagIdsError(sorted(requested - existing))

    for habit_tag in [ht for ht in habit.habit_tags if ht.tag_id not in requested]:
        habit.habit_tags.remove(habit_tag)
    for tag_id in sorted(requested - current):
        habit.habit_tags.append(HabitTag(tag_id=tag_id))
    await db.flush()
    set_wide_event_fields(
        tags_added=len(requested - current), tags_removed=len(current - requested)
    )

    logger.info(
        "habit.tags.upserted",
        extra={
            "habit_id": habit_id,
            "added": len(requested - current),
            "removed": len(current - requested),
        },
    )
    record_write("habit_tags", "upserted")
    return True


async def remove_habit_tag(db: AsyncSession, habit_id: str, tag_id: str) -> None:
    set_wide_event_fields(habit_id=habit_id, tag_id=tag_id)
    if not await HabitRepository(db).delete_habit_tag(habit_id, tag_id):
        raise HabitTagNotFoundError(habit_id, tag_id)
    logger.info("habit.tags.removed", extra={"habit_id": habit_id, "tag_id": tag_id})
    record_write("habit_tags", "removed")
