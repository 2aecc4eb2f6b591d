"""Tag endpoints."""

from fastapi import APIRouter, HTTPException, Request, Response
from starlette import status

from core.database import DbSession
from core.negotiation import AcceptableMediaType
from core.patching import InvalidPatchError, PatchValidationError
from core.ratelimit import WRITE_LIMIT, limiter
from schemas import (
    CreateTagRequest,
    PatchOperation,
    TagResponse,
    TagsCollectionResponse,
    UpdateTagRequest,
)
from services.tags_service import (
    TagAlreadyExistsError,
    TagNotFoundError,
    create_tag,
    delete_tag,
    get_tag,
    list_tags,
    patch_tag,
    update_tag,
)

router = APIRouter(prefix="/tags", tags=["tags"], dependencies=[AcceptableMediaType])


@router.get("", name="get_tags", response_model=TagsCollectionResponse)
async def get_tags_endpoint(db: DbSession) -> TagsCollectionResponse:
    return await list_tags(db)


@router.get(
    "/{tag_id}",
    name="get_tag",
    response_model=TagResponse,
    responses={404: {"description": "Tag not found"}},
)
async def get_tag_endpoint(tag_id: str, db: DbSession) -> TagResponse:
    try:
        return await get_tag(db, tag_id)
    except TagNotFoundError:
        raise HTTPException(status_code=404, detail="Tag not found")


@router.post(
    "",
    name="create_tag",
    status_code=status.HTTP_201_CREATED,
    response_model=TagResponse,
    responses={409: {"description": "Tag name already in use"}},
)
@limiter.limit(WRITE_LIMIT)
async def create_tag_endpoint(
    request: Request,
    response: Response,
    body: CreateTagRequest,
    db: DbSession,
) -> TagResponse:
    try:
        tag = await create_tag(db, body)
    except TagAlreadyExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    response.headers["Location"] = str(request.url_for("get_tag", tag_id=tag.id))
    return tag


@router.put(
    "/{tag_id}",
    name="update_tag",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        404: {"description": "Tag not found"},
        409: {"description": "Tag name already in use"},
    },
)
@limiter.limit(WRITE_LIMIT)
async def update_tag_endpoint(
    request: Request,
    tag_id: str,
    body: UpdateTagRequest,
    db: DbSession,
) -> Response:
    try:
        await update_tag(db, tag_id, body)
    except TagNotFoundError:
        raise HTTPException(status_code=404, detail="Tag not found")
    except TagAlreadyExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch(
    "/{tag_id}",
    name="patch_tag",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"description": "Patch could not be applied"},
        404: {"description": "Tag not found"},
        409: {"description": "Tag name already in use"},
        422: {"description": "Patched tag is invalid"},
    },
)
@limiter.limit(WRITE_LIMIT)
async def patch_tag_endpoint(
    request: Request,
    tag_id: str,
    operations: list[PatchOperation],
    db: DbSession,
) -> Response:
    try:
        await patch_tag(db, tag_id, [op.to_json_patch() for op in operations])
    except TagNotFoundError:
        raise HTTPException(status_code=404, detail="Tag not found")
    except TagAlreadyExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidPatchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PatchValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{tag_id}",
    name="delete_tag",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={410: {"description": "Tag does not exist"}},
)
@limiter.limit(WRITE_LIMIT)
async def delete_tag_endpoint(request: Request, tag_id: str, db: DbSession) -> Response:
    try:
        await delete_tag(db, tag_id)
    except TagNotFoundError:
        raise HTTPException(status_code=410, detail="Tag not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
