"""Request negotiation: response media types and API versions.

Resource routers refuse an ``Accept`` header they cannot satisfy with 406.
Endpoints that exist in more than one version read the requested version
from the ``X-Api-Version`` header or the ``api-version`` query parameter;
without either they answer as 1.0.
"""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Query, Response
from starlette import status

from core.links import HATEOAS_JSON

logger = logging.getLogger(__name__)

PRODUCIBLE_MEDIA_TYPES = frozenset({"application/json", "text/json", HATEOAS_JSON})

API_VERSION_HEADER = "X-Api-Version"
API_VERSION_QUERY = "api-version"
SUPPORTED_API_VERSIONS = ("1.0", "2.0")
DEFAULT_API_VERSION = "1.0"


class UnsupportedApiVersionError(ValueError):
    def __init__(self, requested: str):
        self.requested = requested
        super().__init__(f"Unsupported API version: {requested}")


def _media_ranges(accept: str) -> list[tuple[str, float]]:
    ranges = []
    for part in accept.split(","):
        media_range, *params = (p.strip() for p in part.split(";"))
        if not media_range:
            continue
        quality = 1.0
        for param in params:
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        ranges.append((media_range.lower(), quality))
    return ranges


def is_acceptable(accept: str | None) -> bool:
    """True when some media range in ``accept`` matches a type we produce.

    A missing or blank header accepts anything. Ranges with ``q=0`` are
    refusals and never match.
    """
    if not accept or not accept.strip():
        return True

    for media_range, quality in _media_ranges(accept):
        if quality <= 0:
            continue
        if media_range in ("*/*", "application/*", "text/*"):
            return True
        if media_range in PRODUCIBLE_MEDIA_TYPES:
            return True
    return False


async def require_acceptable_media_type(
    accept: Annotated[str | None, Header()] = None,
) -> None:
    if not is_acceptable(accept):
        logger.info("request.not_acceptable", extra={"accept": accept})
        raise HTTPException(
            status_code=status.HTTP_406_NOT_ACCEPTABLE,
            detail=f"None of the requested media types can be produced: '{accept}'",
        )


def parse_api_version(raw: str | None) -> str:
    """Normalize ``2``, ``2.0`` or ``v2`` to ``"2.0"``.

    Raises:
        UnsupportedApiVersionError: For anything not in SUPPORTED_API_VERSIONS.
    """
    if raw is None or not raw.strip():
        return DEFAULT_API_VERSION

    value = raw.strip().lower().removeprefix("v")
    if "." not in value:
        value = f"{value}.0"
    if value not in SUPPORTED_API_VERSIONS:
        raise UnsupportedApiVersionError(raw)
    return value


async def get_api_version(
    response: Response,
    x_api_version: Annotated[str | None, Header()] = None,
    api_version: Annotated[str | None, Query(alias=API_VERSION_QUERY)] = None,
) -> str:
    """The API version the client asked for, as a dependency."""
    response.headers["api-supported-versions"] = ", ".join(SUPPORTED_API_VERSIONS)

    try:
        from_header = parse_api_version(x_api_version) if x_api_version else None
        from_query = parse_api_version(api_version) if api_version else None
    except UnsupportedApiVersionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"The requested API version '{e.requested}' is not supported",
        )

    if from_header and from_query and from_header != from_query:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Conflicting API versions: {API_VERSION_HEADER} '{x_api_version}' "
                f"and {API_VERSION_QUERY} '{api_version}'"
            ),
        )
    return from_header or from_query or DEFAULT_API_VERSION


ApiVersion = Annotated[str, Depends(get_api_version)]
AcceptableMediaType = Depends(require_acceptable_media_type)
