"""Tag service for tag CRUD.

Tag names are unique; creating or renaming a tag onto an existing name
raises ``TagAlreadyExistsError``.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core.observability import record_collection_size, record_write
from core.patching import apply_json_patch
from core.wide_event import record_collection_query, set_wide_event_fields
from models import Tag
from repositories.tag_repository import TagRepository
from schemas import (
    CreateTagRequest,
    PatchedTag,
    TagResponse,
    TagsCollectionResponse,
    UpdateTagRequest,
)

logger = logging.getLogger(__name__)


class TagNotFoundError(Exception):
    """Raised when a tag id does not exist."""

    def __init__(self, tag_id: str):
        super().__init__(f"Tag not found: {tag_id}")
        self.tag_id = tag_id


class TagAlreadyExistsError(Exception):
    """Raised when another tag already uses the requested name."""

    def __init__(self, name: str):
        super().__init__(f"The tag '{name}' already exists")
        self.name = name


async def list_tags(db: AsyncSession) -> TagsCollectionResponse:
    tags = await TagRepository(db).list_all()
    record_collection_query("tags", returned=len(tags))
    record_collection_size("tags", len(tags))
    return TagsCollectionResponse(data=[TagResponse.model_validate(t) for t in tags])


async def get_tag(db: AsyncSession, tag_id: str) -> TagResponse:
    tag = await TagRepository(db).get_by_id(tag_id)
    if tag is None:
        raise TagNotFoundError(tag_id)
    return TagResponse.model_validate(tag)


async def create_tag(db: AsyncSession, request: CreateTagRequest) -> TagResponse:
    repo = TagRepository(db)
    if await repo.name_exists(request.name):
        raise TagAlreadyExistsError(request.name)

    tag = Tag(
        name=request.name,
        description=request.description,
        created_at_utc=datetime.now(UTC),
    )
    await repo.add(tag)
    set_wide_event_fields(tag_id=tag.id)

    logger.info("tag.created", extra={"tag_id": tag.id})
    record_write("tag", "created")
    return TagResponse.model_validate(tag)


async def _rename(repo: TagRepository, tag: Tag, name: str, description: str | None):
    if name != tag.name and await repo.name_exists(name, exclude_id=tag.id):
        raise TagAlreadyExistsError(name)

    tag.name = name
    tag.description = description
    tag.updated_at_utc = datetime.now(UTC)
    await repo.db.flush()


async def update_tag(db: AsyncSession, tag_id: str, request: UpdateTagRequest) -> None:
    set_wide_event_fields(tag_id=tag_id)
    repo = TagRepository(db)
    tag = await repo.get_by_id(tag_id)
    if tag is None:
        raise TagNotFoundError(tag_id)

    await _rename(repo, tag, request.name, request.description)
    logger.info("tag.updated", extra={"tag_id": tag_id})
    record_write("tag", "updated")


async def patch_tag(
    db: AsyncSession, tag_id: str, operations: Sequence[dict[str, Any]]
) -> None:
    """Apply a JSON Patch to a tag; only name and description are persisted."""
    set_wide_event_fields(tag_id=tag_id)
    repo = TagRepository(db)
    tag = await repo.get_by_id(tag_id)
    if tag is None:
        raise TagNotFoundError(tag_id)

    patched = apply_json_patch(TagResponse.model_validate(tag), operations, PatchedTag)

    await _rename(repo, tag, patched.name, patched.description)
    logger.info("tag.patched", extra={"tag_id": tag_id})
    record_write("tag", "patched")


async def delete_tag(db: AsyncSession, tag_id: str) -> None:
    set_wide_event_fields(tag_id=tag_id)
    repo = TagRepository(db)
    tag = await repo.get_by_id(tag_id)
    if tag is None:
        raise TagNotFoundError(tag_id)

    await repo.delete(tag)
    logger.info("tag.deleted", extra={"tag_id": tag_id})
    record_write("tag", "deleted")
