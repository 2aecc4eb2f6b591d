"""FastAPI application for the DevHabit API.

Run with ``uvicorn main:app`` from the ``api`` directory.
"""

import asyncio
import logging
import subprocess
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import fastapi
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.utils import is_body_allowed_for_status_code
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import Settings, get_settings
from core.database import (
    create_all_tables,
    create_engine,
    create_session_maker,
    dispose_engine,
    init_db,
)
from core.logger import configure_logging
from core.middleware import (
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
    get_request_id,
)
from core.observability import configure_observability, instrument_app
from core.ratelimit import limiter, rate_limit_exceeded_handler
from routes import habit_tags_router, habits_router, health_router, tags_router

logger = logging.getLogger(__name__)

API_DIR = Path(__file__).parent
INIT_TIMEOUT_SECONDS = 60
MIGRATION_TIMEOUT_SECONDS = 120


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> Response:
    """HTTPException bodies (400, 404, 406, 409, 410, ...) with the request id."""
    if not is_body_allowed_for_status_code(exc.status_code):
        return Response(status_code=exc.status_code, headers=exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "request_id": get_request_id(request)},
        headers=exc.headers,
    )


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """500 carrying the request id so clients can quote it."""
    request_id = get_request_id(request)
    logger.exception(
        "unhandled.exception",
        extra={
            "exc_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
            "request_id": request_id,
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred. Please try again.",
            "request_id": request_id,
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """422 with pydantic's error list (bodies, query strings, paths)."""
    errors = exc.errors()
    logger.warning(
        "request.validation_error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_count": len(errors),
            "locations": sorted({".".join(map(str, e["loc"][:1])) for e in errors}),
        },
    )
    return JSONResponse(
        status_code=422,
        content={
            "detail": jsonable_encoder(errors),
            "request_id": get_request_id(request),
        },
    )


def _upgrade_schema() -> subprocess.CompletedProcess[str]:
    # A child process keeps Alembic's sync driver off the event loop.
    return subprocess.run(
        [sys.executable, "-m", "cli", "migrate"],
        cwd=API_DIR,
        capture_output=True,
        text=True,
        timeout=MIGRATION_TIMEOUT_SECONDS,
    )


async def _run_alembic_migrations() -> None:
    result = await asyncio.to_thread(_upgrade_schema)
    if result.returncode != 0:
        stderr = result.stderr.strip()
        logger.error("migrations.failed", extra={"stderr": stderr})
        raise RuntimeError(f"Alembic migration failed:\n{stderr}")
    logger.info("migrations.complete")


async def _prepare_schema(app: fastapi.FastAPI, settings: Settings) -> None:
    await init_db(app.state.engine)

    if settings.should_apply_migrations:
        await _run_alembic_migrations()
    elif settings.is_sqlite_memory:
        # Nothing else can migrate a database that lives in this process.
        await create_all_tables(app.state.engine)


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    """Engine and schema at startup; ``/ready`` reports the outcome."""
    settings: Settings = app.state.settings
    app.state.engine = create_engine(settings)
    app.state.session_maker = create_session_maker(app.state.engine)
    app.state.init_done = False
    app.state.init_error = None

    try:
        async with asyncio.timeout(INIT_TIMEOUT_SECONDS + MIGRATION_TIMEOUT_SECONDS):
            await _prepare_schema(app, settings)
    except TimeoutError:
        app.state.init_error = "startup timed out"
        logger.error(
            "init.timeout",
            extra={"hint": "Check DB connectivity and migration locks"},
        )
        raise RuntimeError("Application startup timed out")
    except Exception as e:
        app.state.init_error = str(e)
        logger.error("init.failed", extra={"error": str(e)}, exc_info=True)
        raise

    app.state.init_done = True
    logger.info(
        "init.complete",
        extra={"backend": app.state.engine.dialect.name},
    )

    try:
        yield
    finally:
        await dispose_engine(app.state.engine)


def _add_middleware(app: fastapi.FastAPI, settings: Settings) -> None:
    # Later add_middleware calls wrap earlier ones.
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(SecurityHeadersMiddleware)

    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Accept", "Content-Type", "X-Request-Id"],
            expose_headers=["Location", "X-Request-Duration-Ms", "X-Request-Id"],
            max_age=600,
        )

    # Outermost, so every response (errors included) carries the request id.
    app.add_middleware(RequestContextMiddleware)


def create_app(settings: Settings | None = None) -> fastapi.FastAPI:
    settings = settings or get_settings()

    # OTel must be configured before the FastAPI instance exists.
    configure_observability(settings)
    configure_logging(settings)

    docs = settings.docs_enabled
    app = fastapi.FastAPI(
        title="DevHabit API",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
    )
    app.state.settings = settings
    app.state.limiter = limiter
    instrument_app(app)

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    _add_middleware(app, settings)

    app.include_router(health_router)
    app.include_router(habits_router)
    app.include_router(habit_tags_router)
    app.include_router(tags_router)
    return app


app = create_app()
