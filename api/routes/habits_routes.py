"""Habit endpoints.

List and single-habit reads support field selection (``fields``) and, with
``Accept: application/vnd.dev-habit.hateoas+json``, hypermedia links.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response
from starlette import status

from core.data_shaping import (
    ShapedRecord,
    shape_collection_data,
    shape_data,
    validate_fields,
)
from core.database import DbSession
from core.links import LinkDto, LinkService, wants_links
from core.negotiation import AcceptableMediaType, ApiVersion
from core.pagination import PaginationResult
from core.patching import InvalidPatchError, PatchValidationError
from core.ratelimit import WRITE_LIMIT, limiter
from core.sorting import SortMappingProvider
from models import Habit
from schemas import (
    CreateHabitRequest,
    HabitResponse,
    HabitsQueryParameters,
    HabitWithTagsResponse,
    HabitWithTagsResponseV2,
    PatchOperation,
    UpdateHabitRequest,
)
from services.habits_service import (
    HabitNotFoundError,
    create_habit,
    delete_habit,
    get_habit,
    get_habit_v2,
    get_sort_mapping_provider,
    list_habits,
    patch_habit,
    update_habit,
)

router = APIRouter(
    prefix="/habits", tags=["habits"], dependencies=[AcceptableMediaType]
)

SortProvider = Annotated[SortMappingProvider, Depends(get_sort_mapping_provider)]
AcceptHeader = Annotated[str | None, Header()]


def invalid_sort_detail(sort: str | None) -> str:
    return f"The provided sort parameter isn't valid: '{sort}'"


def invalid_fields_detail(fields: str | None) -> str:
    return f"The provided data shaping fields aren't valid: '{fields}'"


# =============================================================================
# Links
# =============================================================================


def create_links_for_habit(
    links: LinkService, habit_id: str, fields: str | None = None
) -> list[LinkDto]:
    path = {"habit_id": habit_id}
    return [
        links.create("get_habit", "self", "GET", path, {"fields": fields}),
        links.create("update_habit", "update", "PUT", path),
        links.create("patch_habit", "partial-update", "PATCH", path),
        links.create("delete_habit", "delete", "DELETE", path),
        links.create("upsert_habit_tags", "upsert-tags", "PUT", path),
    ]


def create_links_for_habits(
    links: LinkService,
    params: HabitsQueryParameters,
    has_next_page: bool,
    has_previous_page: bool,
) -> list[LinkDto]:
    result = [
        links.create("get_habits", "self", "GET", query=params.link_values()),
        links.create("create_habit", "create", "POST"),
    ]
    if has_next_page:
        result.append(
            links.create(
                "get_habits",
                "next-page",
                "GET",
                query=params.link_values(page=params.page + 1),
            )
        )
    if has_previous_page:
        result.append(
            links.create(
                "get_habits",
                "previous-page",
                "GET",
                query=params.link_values(page=params.page - 1),
            )
        )
    return result


# =============================================================================
# Endpoints
# =============================================================================


@router.get(
    "",
    name="get_habits",
    response_model=PaginationResult[ShapedRecord],
    responses={400: {"description": "Invalid sort or fields"}},
)
async def get_habits_endpoint(
    request: Request,
    db: DbSession,
    params: Annotated[HabitsQueryParameters, Query()],
    provider: SortProvider,
    accept: AcceptHeader = None,
) -> PaginationResult[ShapedRecord]:
    """List habits with search, filters, sorting, field selection and paging."""
    if not provider.validate_mappings(HabitResponse, Habit, params.sort):
        raise HTTPException(status_code=400, detail=invalid_sort_detail(params.sort))
    if not validate_fields(HabitResponse, params.fields):
        raise HTTPException(
            status_code=400, detail=invalid_fields_detail(params.fields)
        )

    page = await list_habits(db, params, provider)
    include_links = wants_links(accept)
    links = LinkService(request)

    def habit_links(habit: HabitResponse) -> list[LinkDto]:
        return create_links_for_habit(links, habit.id, params.fields)

    shaped = PaginationResult[ShapedRecord](
        items=shape_collection_data(
            page.items,
            params.fields,
            habit_links if include_links else None,
        ),
        page=page.page,
        page_size=page.page_size,
        total_count=page.total_count,
    )
    if include_links:
        shaped.links = create_links_for_habits(
            links, params, shaped.has_next_page, shaped.has_previous_page
        )
    return shaped


@router.get(
    "/{habit_id}",
    name="get_habit",
    response_model=dict[str, Any],
    responses={
        400: {"description": "Invalid fields or unsupported API version"},
        404: {"description": "Habit not found"},
    },
)
async def get_habit_endpoint(
    request: Request,
    habit_id: str,
    db: DbSession,
    api_version: ApiVersion,
    fields: str | None = None,
    accept: AcceptHeader = None,
) -> ShapedRecord:
    """Get a single habit with its tag names.

    API version 2.0 names the timestamps ``created_at``, ``updated_at`` and
    ``last_completed_at``.
    """
    schema = HabitWithTagsResponseV2 if api_version == "2.0" else HabitWithTagsResponse
    if not validate_fields(schema, fields):
        raise HTTPException(status_code=400, detail=invalid_fields_detail(fields))

    load = get_habit_v2 if api_version == "2.0" else get_habit
    try:
        habit = await load(db, habit_id)
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")

    links = None
    if wants_links(accept):
        links = create_links_for_habit(LinkService(request), habit_id, fields)
    return shape_data(habit, fields, links)


@router.post(
    "",
    name="create_habit",
    status_code=status.HTTP_201_CREATED,
    response_model=HabitResponse,
)
@limiter.limit(WRITE_LIMIT)
async def create_habit_endpoint(
    request: Request,
    response: Response,
    body: CreateHabitRequest,
    db: DbSession,
) -> HabitResponse:
    """Create a habit. Links are always included in the response."""
    habit = await create_habit(db, body)
    habit.links = create_links_for_habit(LinkService(request), habit.id)
    response.headers["Location"] = str(request.url_for("get_habit", habit_id=habit.id))
    return habit


@router.put(
    "/{habit_id}",
    name="update_habit",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Habit not found"}},
)
@limiter.limit(WRITE_LIMIT)
async def update_habit_endpoint(
    request: Request,
    habit_id: str,
    body: UpdateHabitRequest,
    db: DbSession,
) -> Response:
    try:
        await update_habit(db, habit_id, body)
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch(
    "/{habit_id}",
    name="patch_habit",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"description": "Patch could not be applied"},
        404: {"description": "Habit not found"},
        422: {"description": "Patched habit is invalid"},
    },
)
@limiter.limit(WRITE_LIMIT)
async def patch_habit_endpoint(
    request: Request,
    habit_id: str,
    operations: list[PatchOperation],
    db: DbSession,
) -> Response:
    """Apply an RFC 6902 JSON Patch. Only name and description are persisted."""
    try:
        await patch_habit(db, habit_id, [op.to_json_patch() for op in operations])
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    except InvalidPatchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PatchValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{habit_id}",
    name="delete_habit",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={410: {"description": "Habit does not exist"}},
)
@limiter.limit(WRITE_LIMIT)
async def delete_habit_endpoint(
    request: Request,
    habit_id: str,
    db: DbSession,
) -> Response:
    try:
        await delete_habit(db, habit_id)
    except HabitNotFoundError:
        raise HTTPException(status_code=410, detail="Habit not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
