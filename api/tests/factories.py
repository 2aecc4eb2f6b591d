"""Factory Boy factories for generating test data.

Usage:
    habit = HabitFactory.build()  # In-memory only
    habit = await create_async(HabitFactory, db_session, name="Read")  # Persisted
"""

from datetime import UTC, datetime

import factory
from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession

from models import (
    FrequencyType,
    Habit,
    HabitStatus,
    HabitTag,
    HabitType,
    Tag,
    new_habit_id,
    new_tag_id,
)

fake = Faker()


# =============================================================================
# Async Factory Helpers
# =============================================================================


async def create_async(
    factory_class: type[factory.Factory], db: AsyncSession, **kwargs
):
    """Create an instance using a factory and persist it (flush + commit).

    Usage:
        tag = await create_async(TagFactory, db_session, name="health")
    """
    instance = factory_class.build(**kwargs)
    db.add(instance)
    await db.commit()
    return instance


async def create_batch_async(
    factory_class: type[factory.Factory], db: AsyncSession, size: int, **kwargs
):
    """Create multiple instances and persist them."""
    instances = factory_class.build_batch(size, **kwargs)
    db.add_all(instances)
    await db.commit()
    return instances


# =============================================================================
# Habit Factory
# =============================================================================


class HabitFactory(factory.Factory):
    """Factory for creating measurable daily Habit instances."""

    class Meta:
        model = Habit

    id = factory.LazyFunction(new_habit_id)
    name = factory.LazyAttribute(lambda _: fake.sentence(nb_words=3).rstrip(".")[:100])
    description = factory.LazyAttribute(lambda _: fake.sentence()[:500])
    type = HabitType.MEASURABLE
    frequency_type = FrequencyType.DAILY
    frequency_times_per_period = 1
    target_value = factory.LazyAttribute(lambda _: fake.random_int(1, 60))
    target_unit = "minutes"
    status = HabitStatus.ONGOING
    is_archived = False
    end_date = None
    milestone_target = None
    milestone_current = None
    created_at_utc = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at_utc = None
    last_completed_at_utc = None


class BinaryHabitFactory(HabitFactory):
    type = HabitType.BINARY
    target_value = 1
    target_unit = "sessions"


# =============================================================================
# Tag Factories
# =============================================================================


class TagFactory(factory.Factory):
    """Factory for creating Tag instances with unique names."""

    class Meta:
        model = Tag

    id = factory.LazyFunction(new_tag_id)
    name = factory.Sequence(lambda n: f"tag-{n:04d}")
    description = factory.LazyAttribute(lambda _: fake.sentence()[:500])
    created_at_utc = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at_utc = None


class HabitTagFactory(factory.Factory):
    class Meta:
        model = HabitTag

    habit_id = None
    tag_id = None
    created_at_utc = factory.LazyFunction(lambda: datetime.now(UTC))
