"""Pydantic schemas for API request/response validation."""

from datetime import UTC, date, datetime
from typing import Annotated, Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.links import LinkDto
from core.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from models import FrequencyType, HabitStatus, HabitType

ALLOWED_UNITS = frozenset(
    {"minutes", "hours", "steps", "km", "cal", "pages", "books", "tasks", "sessions"}
)
BINARY_UNITS = frozenset({"sessions", "tasks"})

HabitName = Annotated[str, Field(min_length=3, max_length=100)]
TagName = Annotated[str, Field(min_length=3, max_length=50)]
Description = Annotated[str | None, Field(max_length=500)]


# =============================================================================
# Habits
# =============================================================================


class FrequencyModel(BaseModel):
    type: FrequencyType
    times_per_period: int = Field(gt=0)


class TargetModel(BaseModel):
    value: int = Field(gt=0)
    unit: str = Field(min_length=1, max_length=100)


class MilestoneModel(BaseModel):
    target: int
    current: int


class MilestoneRequest(BaseModel):
    target: int = Field(gt=0)


class HabitResponse(BaseModel):
    """Habit as returned by the API.

    ``links`` is only populated for HATEOAS requests and is never a
    shapeable field.
    """

    id: str
    name: str
    description: str | None = None
    type: HabitType
    frequency: FrequencyModel
    target: TargetModel
    status: HabitStatus
    is_archived: bool
    end_date: date | None = None
    milestone: MilestoneModel | None = None
    created_at_utc: datetime
    updated_at_utc: datetime | None = None
    last_completed_at_utc: datetime | None = None
    links: list[LinkDto] | None = None


class HabitWithTagsResponse(HabitResponse):
    tags: list[str]


class HabitWithTagsResponseV2(BaseModel):
    """Single habit for API version 2.0: timestamps drop the ``_utc`` suffix."""

    id: str
    name: str
    description: str | None = None
    type: HabitType
    frequency: FrequencyModel
    target: TargetModel
    status: HabitStatus
    is_archived: bool
    end_date: date | None = None
    milestone: MilestoneModel | None = None
    created_at: datetime
    updated_at: datetime | None = None
    last_completed_at: datetime | None = None
    tags: list[str]
    links: list[LinkDto] | None = None


class HabitWriteRequest(BaseModel):
    """Fields shared by create and full update."""

    name: HabitName
    description: Description = None
    type: HabitType
    frequency: FrequencyModel
    target: TargetModel
    end_date: date | None = None
    milestone: MilestoneRequest | None = None

    @model_validator(mode="after")
    def validate_target(self) -> Self:
        if self.target.unit not in ALLOWED_UNITS:
            raise ValueError(
                f"Unit must be one of: {', '.join(sorted(ALLOWED_UNITS))}"
            )
        if self.type == HabitType.BINARY and self.target.unit not in BINARY_UNITS:
            raise ValueError("Binary habits can only use 'sessions' or 'tasks' as unit")
        if self.end_date is not None and self.end_date <= datetime.now(UTC).date():
            raise ValueError("End date must be in the future")
        return self


class CreateHabitRequest(HabitWriteRequest):
    pass


class UpdateHabitRequest(HabitWriteRequest):
    pass


class PatchedHabit(HabitResponse):
    """A habit document after a JSON Patch, revalidated before persisting."""

    name: HabitName
    description: Description = None


class HabitsQueryParameters(BaseModel):
    """Query string of ``GET /habits``."""

    q: str | None = Field(default=None, max_length=100)
    sort: str | None = None
    fields: str | None = None
    type: HabitType | None = None
    status: HabitStatus | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    @property
    def search(self) -> str | None:
        """Normalized search term, or None when blank."""
        if self.q is None:
            return None
        term = self.q.strip().lower()
        return term or None

    def link_values(self, **overrides: Any) -> dict[str, Any]:
        """Current query parameters, for building pagination links."""
        values: dict[str, Any] = {
            "page": self.page,
            "page_size": self.page_size,
            "fields": self.fields,
            "q": self.q,
            "sort": self.sort,
            "type": self.type,
            "status": self.status,
        }
        values.update(overrides)
        return values


# =============================================================================
# JSON Patch
# =============================================================================


class PatchOperation(BaseModel):
    """One RFC 6902 operation."""

    model_config = ConfigDict(populate_by_name=True)

    op: Literal["add", "remove", "replace", "move", "copy", "test"]
    path: str
    value: Any = None
    from_: str | None = Field(default=None, alias="from")

    def to_json_patch(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)


# =============================================================================
# Tags
# =============================================================================


class TagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    created_at_utc: datetime
    updated_at_utc: datetime | None = None


class TagsCollectionResponse(BaseModel):
    data: list[TagResponse]


class CreateTagRequest(BaseModel):
    name: TagName
    description: Description = None


class UpdateTagRequest(BaseModel):
    name: TagName
    description: Description = None


class PatchedTag(TagResponse):
    name: TagName
    description: Description = None


class UpsertHabitTagsRequest(BaseModel):
    tag_ids: list[str]


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


class PoolStatusResponse(BaseModel):
    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


class DetailedHealthResponse(HealthResponse):
    database: bool
    backend: str
    schema_revision: str | None = None
    pool: PoolStatusResponse | None = None
