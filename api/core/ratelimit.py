"""Rate limiting using slowapi.

Writes (create, update, patch, delete, tag upserts) and health probes get
their own limits; everything else falls under the default limit.

memory:// storage keeps separate counters per worker; set
RATELIMIT_STORAGE_URI="redis://host:port/db" when running several replicas.
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import get_settings
from core.middleware import get_request_id

logger = logging.getLogger(__name__)

settings = get_settings()

WRITE_LIMIT = settings.write_rate_limit
HEALTH_LIMIT = settings.health_rate_limit

_using_redis = settings.ratelimit_storage_uri.startswith("redis://")

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.default_rate_limit],
    storage_uri=settings.ratelimit_storage_uri,
    # Fall back to memory when Redis is temporarily unavailable
    in_memory_fallback_enabled=_using_redis,
    key_prefix="devhabit:",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """429 with a Retry-After header and the limit that was hit."""
    route = request.scope.get("route")
    logger.warning(
        "ratelimit.exceeded",
        extra={
            "client": get_remote_address(request),
            "limit": exc.detail,
            "method": request.method,
            "route": getattr(route, "path", request.url.path),
        },
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "limit": exc.detail,
            "request_id": get_request_id(request),
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )
