"""Liveness, readiness and detailed health endpoints."""

from fastapi import APIRouter, HTTPException, Request
from starlette import status

from core.database import check_db_connection, comprehensive_health_check
from core.ratelimit import HEALTH_LIMIT, limiter
from schemas import DetailedHealthResponse, HealthResponse, PoolStatusResponse

SERVICE_NAME = "devhabit-api"

router = APIRouter(tags=["health"])


def _startup_problem(request: Request) -> str | None:
    """Why the app is not ready yet, or None once startup has finished."""
    init_error = getattr(request.app.state, "init_error", None)
    if init_error:
        return f"Initialization failed: {init_error}"
    if not getattr(request.app.state, "init_done", False):
        return "Starting"
    return None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness: the process is up. Does not touch the database."""
    return HealthResponse(status="healthy", service=SERVICE_NAME)


@router.get("/health/detailed", response_model=DetailedHealthResponse)
@limiter.limit(HEALTH_LIMIT)
async def health_detailed(request: Request) -> DetailedHealthResponse:
    """Database reachability, backend, applied migration and pool counters.

    Always 200; ``status`` is "unhealthy" when the database check fails.
    ``schema_revision`` is null when the schema was not created by Alembic.
    """
    result = await comprehensive_health_check(request.app.state.engine)
    pool = result["pool"]

    return DetailedHealthResponse(
        status="healthy" if result["database"] else "unhealthy",
        service=SERVICE_NAME,
        database=result["database"],
        backend=result["backend"],
        schema_revision=result["schema_revision"],
        pool=PoolStatusResponse(**pool._asdict()) if pool is not None else None,
    )


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={
        503: {
            "description": "Starting, startup failed, or database unreachable",
            "content": {
                "application/json": {"example": {"detail": "Database unavailable"}}
            },
        }
    },
)
@limiter.limit(HEALTH_LIMIT)
async def ready(request: Request) -> HealthResponse:
    """Readiness: startup (connectivity check, migrations) finished and the
    database answers."""
    problem = _startup_problem(request)
    if problem:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=problem
        )

    try:
        await check_db_connection(request.app.state.engine)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from e

    return HealthResponse(status="ready", service=SERVICE_NAME)
