"""Per-request context for the canonical ``request.completed`` log line.

``RequestContextMiddleware`` opens an event when a request starts and emits
it once the response body has been sent. Services and repositories add the
domain facts of the request (which habit or tag was touched, how the
collection was queried, how many queries ran) instead of logging separately.

Usage:
    from core.wide_event import record_collection_query, set_wide_event_fields

    set_wide_event_fields(habit_id=habit.id)
    record_collection_query("habits", sort=params.sort, returned=len(items))
"""

from contextvars import ContextVar
from typing import Any

_wide_event: ContextVar[dict[str, Any] | None] = ContextVar(
    "wide_event", default=None
)


def init_wide_event(**fields: Any) -> dict[str, Any]:
    """Start a fresh event for the current async context."""
    event: dict[str, Any] = dict(fields)
    _wide_event.set(event)
    return event


def get_wide_event() -> dict[str, Any]:
    """Current event, or an empty throwaway dict outside a request."""
    event = _wide_event.get()
    return event if event is not None else {}


def set_wide_event_fields(**fields: Any) -> None:
    """No-op outside a request (CLI seeding, unit tests without the fixture)."""
    event = _wide_event.get()
    if event is not None:
        event.update(fields)


def increment_wide_event(field: str, amount: float = 1) -> None:
    event = _wide_event.get()
    if event is not None:
        event[field] = event.get(field, 0) + amount


def record_collection_query(
    resource: str,
    *,
    returned: int,
    total: int | None = None,
    sort: str | None = None,
    fields: str | None = None,
    page: int | None = None,
    page_size: int | None = None,
) -> None:
    """Attach how a collection endpoint was queried and what it returned.

    Unset options are left out so the log line stays short.
    """
    values = {
        "total": total,
        "sort": sort,
        "fields": fields,
        "page": page,
        "page_size": page_size,
    }
    set_wide_event_fields(
        collection=resource,
        items_returned=returned,
        **{f"query_{k}": v for k, v in values.items() if v is not None},
    )


def clear_wide_event() -> None:
    _wide_event.set(None)
