"""Seed the configured database with sample tags and habits.

Idempotent: tags whose name already exists are skipped, and habits are only
inserted when the habits table is empty.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine

from core.database import (
    create_engine,
    create_session_maker,
    dispose_engine,
    session_scope,
)
from models import FrequencyType, Habit, HabitStatus, HabitTag, HabitType, Tag

SAMPLE_TAGS: list[tuple[str, str]] = [
    ("health", "Physical and mental wellbeing"),
    ("learning", "Reading, courses and practice"),
    ("productivity", "Getting things done"),
]

# name, description, type, frequency, times, target value, unit, tag names
SampleHabit = tuple[
    str, str | None, HabitType, FrequencyType, int, int, str, list[str]
]

SAMPLE_HABITS: list[SampleHabit] = [
    (
        "Morning run",
        "Run before breakfast",
        HabitType.MEASURABLE,
        FrequencyType.DAILY,
        1,
        5,
        "km",
        ["health"],
    ),
    (
        "Read",
        "Read technical books",
        HabitType.MEASURABLE,
        FrequencyType.DAILY,
        1,
        20,
        "pages",
        ["learning"],
    ),
    (
        "Meditate",
        None,
        HabitType.BINARY,
        FrequencyType.DAILY,
        1,
        1,
        "sessions",
        ["health"],
    ),
    (
        "Weekly review",
        "Plan the next week",
        HabitType.BINARY,
        FrequencyType.WEEKLY,
        1,
        1,
        "tasks",
        ["productivity"],
    ),
]


@dataclass
class SeedResult:
    tags: int = 0
    habits: int = 0


async def seed_database(engine: AsyncEngine | None = None) -> SeedResult:
    """Insert the sample data; the engine is created and disposed here unless
    one is passed in."""
    owns_engine = engine is None
    if engine is None:
        engine = create_engine()
    result = SeedResult()
    now = datetime.now(UTC)

    try:
        async with session_scope(create_session_maker(engine)) as session:
            existing = await session.execute(select(Tag))
            tags_by_name = {tag.name: tag for tag in existing.scalars()}

            for name, description in SAMPLE_TAGS:
                if name in tags_by_name:
                    continue
                tag = Tag(name=name, description=description, created_at_utc=now)
                session.add(tag)
                tags_by_name[name] = tag
                result.tags += 1
            await session.flush()

            habit_count = (
                await session.execute(select(func.count()).select_from(Habit))
            ).scalar_one()
            if habit_count == 0:
                for (
                    name,
                    description,
                    habit_type,
                    frequency,
                    times,
                    value,
                    unit,
                    tag_names,
                ) in SAMPLE_HABITS:
                    habit = Habit(
                        name=name,
                        description=description,
                        type=habit_type,
                        frequency_type=frequency,
                        frequency_times_per_period=times,
                        target_value=value,
                        target_unit=unit,
                        status=HabitStatus.ONGOING,
                        is_archived=False,
                        created_at_utc=now,
                        habit_tags=[
                            HabitTag(tag_id=tags_by_name[tag_name].id)
                            for tag_name in tag_names
                        ],
                    )
                    session.add(habit)
                    result.habits += 1
    finally:
        if owns_engine:
            await dispose_engine(engine)

    return result
