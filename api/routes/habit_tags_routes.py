"""Endpoints linking tags to a habit."""

from fastapi import APIRouter, HTTPException, Request, Response
from starlette import status

from core.database import DbSession
from core.negotiation import AcceptableMediaType
from core.ratelimit import WRITE_LIMIT, limiter
from schemas import UpsertHabitTagsRequest
from services.habit_tags_service import (
    HabitTagNotFoundError,
    InvalidTagIdsError,
    remove_habit_tag,
    upsert_habit_tags,
)
from services.habits_service import HabitNotFoundError

router = APIRouter(
    prefix="/habits/{habit_id}/tags",
    tags=["habit-tags"],
    dependencies=[AcceptableMediaType],
)


@router.put(
    "",
    name="upsert_habit_tags",
    responses={
        204: {"description": "Tags already match"},
        400: {"description": "One or more tag IDs is invalid"},
        404: {"description": "Habit not found"},
    },
)
@limiter.limit(WRITE_LIMIT)
async def upsert_habit_tags_endpoint(
    request: Request,
    habit_id: str,
    body: UpsertHabitTagsRequest,
    db: DbSession,
) -> Response:
    """Replace the habit's tags with ``tag_ids``."""
    try:
        changed = await upsert_habit_tags(db, habit_id, body.tag_ids)
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    except InvalidTagIdsError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not changed:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return Response(status_code=status.HTTP_200_OK)


@router.delete(
    "/{tag_id}",
    name="delete_habit_tag",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Tag is not linked to the habit"}},
)
@limiter.limit(WRITE_LIMIT)
async def delete_habit_tag_endpoint(
    request: Request,
    habit_id: str,
    tag_id: str,
    db: DbSession,
) -> Response:
    try:
        await remove_habit_tag(db, habit_id, tag_id)
    except HabitTagNotFoundError:
        raise HTTPException(status_code=404, detail="Tag is not linked to the habit")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
