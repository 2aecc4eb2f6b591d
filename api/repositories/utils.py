"""Timing decorator shared by repository methods."""

import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from core.logger import get_logger
from core.wide_event import increment_wide_event, set_wide_event_fields

logger = get_logger(__name__)

SLOW_QUERY_THRESHOLD_MS = 500

P = ParamSpec("P")
R = TypeVar("R")


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def log_slow_query(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Time a repository operation and report it on the request's wide event.

    Every call bumps ``db_operations`` and adds to ``db_total_ms``. Calls
    slower than ``SLOW_QUERY_THRESHOLD_MS`` also log ``db.query.slow``.
    Failures are recorded and re-raised unchanged.

    Usage:
        @log_slow_query("habits.list_page")
        async def list_page(self, query, page, page_size):
            ...
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            increment_wide_event("db_operations")
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                set_wide_event_fields(
                    db_failed_operation=operation_name,
                    db_duration_ms=_elapsed_ms(start),
                    db_error_type=type(e).__name__,
                )
                raise

            duration_ms = _elapsed_ms(start)
            increment_wide_event("db_total_ms", duration_ms)
            if duration_ms > SLOW_QUERY_THRESHOLD_MS:
                logger.warning(
                    "db.query.slow",
                    operation=operation_name,
                    duration_ms=duration_ms,
                )
                set_wide_event_fields(db_slow_operation=operation_name)
            return result

        return wrapper

    return decorator
