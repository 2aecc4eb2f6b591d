"""Tests for the request wide event and the repository timing decorator."""

from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from core.wide_event import (
    clear_wide_event,
    get_wide_event,
    increment_wide_event,
    init_wide_event,
    record_collection_query,
    set_wide_event_fields,
)
from repositories.tag_repository import TagRepository
from repositories.utils import log_slow_query


@pytest.mark.unit
class TestWideEvent:
    def test_fields_are_ignored_outside_a_request(self):
        clear_wide_event()

        set_wide_event_fields(habit_id="h_1")
        increment_wide_event("db_operations")

        assert get_wide_event() == {}

    def test_increment_accumulates(self):
        init_wide_event(request_id="r1")

        increment_wide_event("db_operations")
        increment_wide_event("db_operations")
        increment_wide_event("db_total_ms", 1.5)

        event = get_wide_event()
        assert event["db_operations"] == 2
        assert event["db_total_ms"] == 1.5
        assert event["request_id"] == "r1"

    def test_record_collection_query_skips_unset_options(self):
        event = init_wide_event()

        record_collection_query("habits", returned=2, total=7, sort="name desc")

        assert event == {
            "collection": "habits",
            "items_returned": 2,
            "query_total": 7,
            "query_sort": "name desc",
        }


@pytest.mark.unit
class TestLogSlowQuery:
    async def test_records_failures_and_reraises(self):
        event = init_wide_event()

        @log_slow_query("tags.broken")
        async def broken() -> None:
            raise LookupError("gone")

        with pytest.raises(LookupError):
            await broken()

        assert event["db_operations"] == 1
        assert event["db_failed_operation"] == "tags.broken"
        assert event["db_error_type"] == "LookupError"

    async def test_marks_slow_operations(self):
        event = init_wide_event()

        @log_slow_query("habits.list_page")
        async def slow() -> str:
            return "ok"

        with patch("repositories.utils.SLOW_QUERY_THRESHOLD_MS", -1):
            assert await slow() == "ok"

        assert event["db_slow_operation"] == "habits.list_page"


@pytest.mark.integration
class TestRepositoryInstrumentation:
    async def test_repository_calls_are_counted(self, db_session: AsyncSession):
        event = init_wide_event()
        repo = TagRepository(db_session)

        await repo.list_all()
        await repo.get_existing_ids(["t_missing"])

        assert event["db_operations"] == 2
        assert "db_slow_operation" not in event
