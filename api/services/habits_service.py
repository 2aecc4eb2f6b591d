"""Habit service for habit CRUD and listing.

This module handles:
- Sortable fields of habits (``HABIT_SORT_MAPPINGS``)
- Filtered, sorted, paginated habit listing
- Create / full update / JSON Patch / delete

Routes should delegate habit business logic to this module.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core.observability import record_collection_size, record_write
from core.pagination import PaginationResult
from core.patching import apply_json_patch
from core.sorting import (
    SortMapping,
    SortMappingDefinition,
    SortMappingProvider,
    apply_sort,
)
from core.wide_event import record_collection_query, set_wide_event_fields
from models import Habit, HabitStatus
from repositories.habit_repository import HabitRepository
from schemas import (
    CreateHabitRequest,
    FrequencyModel,
    HabitResponse,
    HabitsQueryParameters,
    HabitWithTagsResponse,
    HabitWithTagsResponseV2,
    MilestoneModel,
    PatchedHabit,
    TargetModel,
    UpdateHabitRequest,
)

logger = logging.getLogger(__name__)


class HabitNotFoundError(Exception):
    """Raised when a habit id does not exist."""

    def __init__(self, habit_id: str):
        super().__init__(f"Habit not found: {habit_id}")
        self.habit_id = habit_id


# =============================================================================
# Sorting
# =============================================================================

HABIT_SORT_MAPPINGS = SortMappingDefinition(
    result_type=HabitResponse,
    entity_type=Habit,
    mappings=(
        SortMapping("name", ("name",)),
        SortMapping("description", ("description",)),
        SortMapping("type", ("type",)),
        SortMapping("frequency", ("frequency_type", "frequency_times_per_period")),
        SortMapping("frequency.type", ("frequency_type",)),
        SortMapping("frequency.times_per_period", ("frequency_times_per_period",)),
        SortMapping("target", ("target_value", "target_unit")),
        SortMapping("target.value", ("target_value",)),
        SortMapping("target.unit", ("target_unit",)),
        SortMapping("status", ("status",)),
        SortMapping("is_archived", ("is_archived",)),
        SortMapping("end_date", ("end_date",)),
        SortMapping("created_at_utc", ("created_at_utc",)),
        SortMapping("updated_at_utc", ("updated_at_utc",)),
        SortMapping("last_completed_at_utc", ("last_completed_at_utc",)),
        # Youngest first on "age asc".
        SortMapping("age", ("created_at_utc",), reverse=True),
    ),
)


@lru_cache
def get_sort_mapping_provider() -> SortMappingProvider:
    """Process-wide sort mapping registry."""
    return SortMappingProvider([HABIT_SORT_MAPPINGS])


# =============================================================================
# Mapping
# =============================================================================


def to_habit_response(habit: Habit) -> HabitResponse:
    return HabitResponse(**_habit_fields(habit))


def to_habit_with_tags_response(habit: Habit) -> HabitWithTagsResponse:
    return HabitWithTagsResponse(**_habit_fields(habit), tags=_tag_names(habit))


def to_habit_with_tags_response_v2(habit: Habit) -> HabitWithTagsResponseV2:
    fields = _habit_fields(habit)
    for name in ("created_at", "updated_at", "last_completed_at"):
        fields[name] = fields.pop(f"{name}_utc")
    return HabitWithTagsResponseV2(**fields, tags=_tag_names(habit))


def _tag_names(habit: Habit) -> list[str]:
    return sorted(habit_tag.tag.name for habit_tag in habit.habit_tags)


def _habit_fields(habit: Habit) -> dict[str, Any]:
    milestone = None
    if habit.milestone_target is not None:
        milestone = MilestoneModel(
            target=habit.milestone_target,
            current=habit.milestone_current or 0,
        )
    return {
        "id": habit.id,
        "name": habit.name,
        "description": habit.description,
        "type": habit.type,
        "frequency": FrequencyModel(
            type=habit.frequency_type,
            times_per_period=habit.frequency_times_per_period,
        ),
        "target": TargetModel(value=habit.target_value, unit=habit.target_unit),
        "status": habit.status,
        "is_archived": habit.is_archived,
        "end_date": habit.end_date,
        "milestone": milestone,
        "created_at_utc": habit.created_at_utc,
        "updated_at_utc": habit.updated_at_utc,
        "last_completed_at_utc": habit.last_completed_at_utc,
    }


def _apply_write_request(
    habit: Habit, request: CreateHabitRequest | UpdateHabitRequest
) -> None:
    habit.name = request.name
    habit.description = request.description
    habit.type = request.type
    habit.frequency_type = request.frequency.type
    habit.frequency_times_per_period = request.frequency.times_per_period
    habit.target_value = request.target.value
    habit.target_unit = request.target.unit
    habit.end_date = request.end_date
    if request.milestone is not None:
        habit.milestone_target = request.milestone.target
        if habit.milestone_current is None:
            habit.milestone_current = 0
    else:
        habit.milestone_target = None
        habit.milestone_current = None


# =============================================================================
# Queries
# =============================================================================


async def list_habits(
    db: AsyncSession,
    params: HabitsQueryParameters,
    provider: SortMappingProvider,
) -> PaginationResult[HabitResponse]:
    """Return one page of habits matching ``params``.

    ``params.sort`` must already have been validated against ``provider``.
    Without a sort expression habits are ordered oldest first; ``id`` breaks
    ties so paging is stable.
    """
    repo = HabitRepository(db)
    query = repo.build_list_query(
        search=params.search,
        habit_type=params.type,
        status=params.status,
    )
    if params.sort and params.sort.strip():
        query = apply_sort(
            query, params.sort, provider.get_mappings(HabitResponse, Habit)
        )
    else:
        query = query.order_by(Habit.created_at_utc)
    query = query.order_by(Habit.id)

    habits, total_count = await repo.list_page(query, params.page, params.page_size)
    record_collection_query(
        "habits",
        returned=len(habits),
        total=total_count,
        sort=params.sort,
        fields=params.fields,
        page=params.page,
        page_size=params.page_size,
    )
    record_collection_size("habits", len(habits))

    return PaginationResult[HabitResponse](
        items=[to_habit_response(habit) for habit in habits],
        page=params.page,
        page_size=params.page_size,
        total_count=total_count,
    )


async def get_habit(db: AsyncSession, habit_id: str) -> HabitWithTagsResponse:
    set_wide_event_fields(habit_id=habit_id)
    habit = await HabitRepository(db).get_with_tags(habit_id)
    if habit is None:
        raise HabitNotFoundError(habit_id)
    return to_habit_with_tags_response(habit)


async def get_habit_v2(db: AsyncSession, habit_id: str) -> HabitWithTagsResponseV2:
    set_wide_event_fields(habit_id=habit_id, api_version="2.0")
    habit = await HabitRepository(db).get_with_tags(habit_id)
    if habit is None:
        raise HabitNotFoundError(habit_id)
    return to_habit_with_tags_response_v2(habit)


# =============================================================================
# Commands
# =============================================================================


async def create_habit(db: AsyncSession, request: CreateHabitRequest) -> HabitResponse:
    habit = Habit(
        status=HabitStatus.ONGOING,
        is_archived=False,
        created_at_utc=datetime.now(UTC),
    )
    _apply_write_request(habit, request)
    await HabitRepository(db).add(habit)
    set_wide_event_fields(habit_id=habit.id)

    logger.info("habit.created", extra={"habit_id": habit.id})
    record_write("habit", "created")
    return to_habit_response(habit)


async def update_habit(
    db: AsyncSession, habit_id: str, request: UpdateHabitRequest
) -> None:
    set_wide_event_fields(habit_id=habit_id)
    habit = await HabitRepository(db).get_by_id(habit_id)
    if habit is None:
        raise HabitNotFoundError(habit_id)

    _apply_write_request(habit, request)
    habit.updated_at_utc = datetime.now(UTC)
    await db.flush()
    logger.info("habit.updated", extra={"habit_id": habit_id})
    record_write("habit", "updated")


async def patch_habit(
    db: AsyncSession, habit_id: str, operations: Sequence[dict[str, Any]]
) -> None:
    """Apply a JSON Patch to a habit.

    The patch runs against the habit's API representation. Only ``name``
    and ``description`` are persisted.

    Raises:
        HabitNotFoundError: unknown habit id
        InvalidPatchError: the patch cannot be applied
        PatchValidationError: the patched habit fails validation
    """
    set_wide_event_fields(habit_id=habit_id)
    habit = await HabitRepository(db).get_by_id(habit_id)
    if habit is None:
        raise HabitNotFoundError(habit_id)

    patched = apply_json_patch(to_habit_response(habit), operations, PatchedHabit)

    habit.name = patched.name
    habit.description = patched.description
    habit.updated_at_utc = datetime.now(UTC)
    await db.flush()
    logger.info("habit.patched", extra={"habit_id": habit_id})
    record_write("habit", "patched")


async def delete_habit(db: AsyncSession, habit_id: str) -> None:
    set_wide_event_fields(habit_id=habit_id)
    repo = HabitRepository(db)
    habit = await repo.get_by_id(habit_id)
    if habit is None:
        raise HabitNotFoundError(habit_id)

    await repo.delete(habit)
    logger.info("habit.deleted", extra={"habit_id": habit_id})
    record_write("habit", "deleted")
