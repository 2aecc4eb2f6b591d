"""Hypermedia links (HATEOAS) for API responses.

Links are only attached when the client asks for them with
``Accept: application/vnd.dev-habit.hateoas+json``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable

from fastapi import Request
from pydantic import BaseModel

HATEOAS_JSON = "application/vnd.dev-habit.hateoas+json"

LINKS_KEY = "links"


class LinkDto(BaseModel):
    href: str
    rel: str
    method: str


@runtime_checkable
class LinksResponse(Protocol):
    """Response schemas that can carry hypermedia links.

    The ``links`` attribute is reserved: it is never a shapeable field.
    """

    links: list[LinkDto] | None


def wants_links(accept: str | None) -> bool:
    """True when the Accept header asks for the HATEOAS media type."""
    if not accept:
        return False
    return any(
        part.split(";")[0].strip().lower() == HATEOAS_JSON
        for part in accept.split(",")
    )


def _query_value(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class LinkService:
    """Builds ``LinkDto``s for named routes of the current application.

    ``path_params`` fill the route's path; ``query`` values are appended as
    query parameters with ``None`` values dropped.
    """

    def __init__(self, request: Request):
        self._request = request

    def create(
        self,
        endpoint_name: str,
        rel: str,
        method: str,
        path_params: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
    ) -> LinkDto:
        url = self._request.url_for(
            endpoint_name,
            **{name: _query_value(v) for name, v in (path_params or {}).items()},
        )
        query_values = {
            name: _query_value(value)
            for name, value in (query or {}).items()
            if value is not None
        }
        if query_values:
            url = url.include_query_params(**query_values)

        return LinkDto(href=str(url), rel=rel, method=method)
