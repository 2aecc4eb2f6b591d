"""Offset pagination over SQLAlchemy selects."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, computed_field
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.links import LinkDto

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class PaginationResult(BaseModel, Generic[T]):
    """A page of items plus paging metadata.

    Out-of-range pages are not clamped; they simply contain no items.
    """

    items: list[T]
    page: int
    page_size: int
    total_count: int
    links: list[LinkDto] | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_next_page(self) -> bool:
        return self.page * self.page_size < self.total_count

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_previous_page(self) -> bool:
        return self.page > 1


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


async def paginate(
    db: AsyncSession, query: Select, page: int, page_size: int
) -> tuple[list[Any], int]:
    """Return ``(items, total_count)`` for one page of ``query``.

    The count runs over the filtered query without ordering or paging.
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total_count = (await db.execute(count_query)).scalar_one()

    result = await db.execute(
        query.offset(page_offset(page, page_size)).limit(page_size)
    )
    return list(result.scalars().all()), total_count
