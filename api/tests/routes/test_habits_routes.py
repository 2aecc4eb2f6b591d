"""Route tests for /habits."""

from datetime import date, timedelta
from urllib.parse import parse_qs, urlsplit

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from core.links import HATEOAS_JSON
from models import Habit
from tests.factories import HabitFactory, HabitTagFactory, TagFactory, create_async

pytestmark = pytest.mark.integration

HATEOAS = {"Accept": HATEOAS_JSON}


def _habit_payload(**overrides) -> dict:
    payload = {
        "name": "Morning run",
        "description": "Run before breakfast",
        "type": "measurable",
        "frequency": {"type": "daily", "times_per_period": 1},
        "target": {"value": 5, "unit": "km"},
    }
    payload.update(overrides)
    return payload


def _links_by_rel(links: list[dict]) -> dict[str, dict]:
    return {link["rel"]: link for link in links}


class TestListHabits:
    """Tests for GET /habits."""

    async def test_returns_pagination_envelope(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        for i in range(3):
            await create_async(HabitFactory, db_session, name=f"Habit {i}")

        response = await client.get("/habits", params={"page_size": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["page"] == 1
        assert body["page_size"] == 2
        assert body["total_count"] == 3
        assert body["has_next_page"] is True
        assert body["has_previous_page"] is False
        assert len(body["items"]) == 2
        assert "links" not in body["items"][0]

    async def test_fields_shape_items(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        habit = await create_async(HabitFactory, db_session)

        response = await client.get("/habits", params={"fields": "Name, id"})

        assert response.status_code == 200
        assert response.json()["items"] == [{"name": habit.name, "id": habit.id}]

    async def test_filters_and_sorting(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        await create_async(HabitFactory, db_session, name="Alpha read")
        await create_async(HabitFactory, db_session, name="Beta read")
        await create_async(HabitFactory, db_session, name="Gamma", description="x")

        response = await client.get(
            "/habits",
            params={"q": "READ", "sort": "name desc", "type": "measurable"},
        )

        assert response.status_code == 200
        names = [item["name"] for item in response.json()["items"]]
        assert names == ["Beta read", "Alpha read"]

    async def test_invalid_sort_returns_400(self, client: AsyncClient):
        response = await client.get("/habits", params={"sort": "name,color desc"})

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "The provided sort parameter isn't valid: 'name,color desc'"
        )

    async def test_invalid_fields_returns_400(self, client: AsyncClient):
        response = await client.get("/habits", params={"fields": "id,color"})

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "The provided data shaping fields aren't valid: 'id,color'"
        )

    async def test_tags_is_not_a_list_field(self, client: AsyncClient):
        response = await client.get("/habits", params={"fields": "tags"})

        assert response.status_code == 400

    @pytest.mark.parametrize("params", [{"page": 0}, {"page_size": 101}])
    async def test_out_of_range_paging_returns_422(self, client: AsyncClient, params):
        response = await client.get("/habits", params=params)

        assert response.status_code == 422

    async def test_hateoas_adds_item_and_collection_links(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        for i in range(3):
            await create_async(HabitFactory, db_session, name=f"Habit {i}")

        response = await client.get(
            "/habits", params={"page": 2, "page_size": 1}, headers=HATEOAS
        )

        body = response.json()
        collection_links = _links_by_rel(body["links"])
        assert set(collection_links) == {
            "self",
            "create",
            "next-page",
            "previous-page",
        }
        assert collection_links["create"]["method"] == "POST"

        item = body["items"][0]
        item_links = _links_by_rel(item["links"])
        assert set(item_links) == {
            "self",
            "update",
            "partial-update",
            "delete",
            "upsert-tags",
        }
        assert item_links["self"]["href"] == f"http://test/habits/{item['id']}"
        assert item_links["upsert-tags"]["href"] == (
            f"http://test/habits/{item['id']}/tags"
        )

    async def test_previous_page_link_reproduces_first_page(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        for i in range(4):
            await create_async(HabitFactory, db_session, name=f"Read {i}")
        params = {
            "page": 2,
            "page_size": 2,
            "q": "read",
            "sort": "name",
            "fields": "id,name",
        }

        second = await client.get("/habits", params=params, headers=HATEOAS)
        previous = _links_by_rel(second.json()["links"])["previous-page"]["href"]

        query = parse_qs(urlsplit(previous).query)
        assert query == {
            "page": ["1"],
            "page_size": ["2"],
            "fields": ["id,name"],
            "q": ["read"],
            "sort": ["name"],
        }

        first = await client.get(previous, headers=HATEOAS)
        direct = await client.get(
            "/habits", params={**params, "page": 1}, headers=HATEOAS
        )
        assert first.json()["items"] == direct.json()["items"]
        assert first.json()["page"] == 1
        assert "previous-page" not in _links_by_rel(first.json()["links"])


class TestGetHabit:
    """Tests for GET /habits/{habit_id}."""

    async def test_returns_habit_with_tags(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        habit = await create_async(HabitFactory, db_session)
        tag = await create_async(TagFactory, db_session, name="health")
        await create_async(HabitTagFactory, db_session, habit_id=habit.id, tag_id=tag.id)

        response = await client.get(f"/habits/{habit.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == habit.id
        assert body["tags"] == ["health"]
        assert body["frequency"] == {"type": "daily", "times_per_period": 1}
        assert "links" not in body

    async def test_fields_and_links(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        habit = await create_async(HabitFactory, db_session)

        response = await client.get(
            f"/habits/{habit.id}", params={"fields": "tags,name"}, headers=HATEOAS
        )

        body = response.json()
        assert list(body) == ["tags", "name", "links"]
        self_link = _links_by_rel(body["links"])["self"]
        assert self_link["href"] == f"http://test/habits/{habit.id}?fields=tags%2Cname"

    async def test_invalid_fields_returns_400(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        habit = await create_async(HabitFactory, db_session)

        response = await client.get(f"/habits/{habit.id}", params={"fields": "nope"})

        assert response.status_code == 400

    async def test_missing_habit_returns_404(self, client: AsyncClient):
        response = await client.get("/habits/h_missing")

        assert response.status_code == 404


class TestGetHabitVersions:
    """Tests for API version selection on GET /habits/{habit_id}."""

    async def test_defaults_to_version_1(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        habit = await create_async(HabitFactory, db_session)

        response = await client.get(f"/habits/{habit.id}")

        assert response.headers["api-supported-versions"] == "1.0, 2.0"
        assert "created_at_utc" in response.json()

    @pytest.mark.parametrize(
        ("headers", "params"),
        [
            ({"X-Api-Version": "2.0"}, {}),
            ({"X-Api-Version": "v2"}, {}),
            ({}, {"api-version": "2"}),
            ({"X-Api-Version": "2"}, {"api-version": "2.0"}),
        ],
    )
    async def test_version_2_renames_timestamps(
        self, client: AsyncClient, db_session: AsyncSession, headers, params
    ):
        habit = await create_async(HabitFactory, db_session)
        tag = await create_async(TagFactory, db_session, name="health")
        await create_async(HabitTagFactory, db_session, habit_id=habit.id, tag_id=tag.id)

        response = await client.get(
            f"/habits/{habit.id}", headers=headers, params=params
        )

        assert response.status_code == 200
        body = response.json()
        assert {"created_at", "updated_at", "last_completed_at"} <= set(body)
        assert "created_at_utc" not in body
        assert body["tags"] == ["health"]

    async def test_version_2_shapes_its_own_fields(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        habit = await create_async(HabitFactory, db_session)
        v2 = {"X-Api-Version": "2.0", **HATEOAS}

        shaped = await client.get(
            f"/habits/{habit.id}", params={"fields": "name,created_at"}, headers=v2
        )
        old_name = await client.get(
            f"/habits/{habit.id}", params={"fields": "created_at_utc"}, headers=v2
        )

        assert list(shaped.json()) == ["name", "created_at", "links"]
        assert old_name.status_code == 400

    @pytest.mark.parametrize(
        ("headers", "params"),
        [
            ({"X-Api-Version": "3.0"}, {}),
            ({}, {"api-version": "latest"}),
            ({"X-Api-Version": "1.0"}, {"api-version": "2.0"}),
        ],
    )
    async def test_unsupported_or_conflicting_version_returns_400(
        self, client: AsyncClient, db_session: AsyncSession, headers, params
    ):
        habit = await create_async(HabitFactory, db_session)

        response = await client.get(
            f"/habits/{habit.id}", headers=headers, params=params
        )

        assert response.status_code == 400
        assert "version" in response.json()["detail"]


class TestContentNegotiation:
    @pytest.mark.parametrize("path", ["/habits", "/tags"])
    async def test_unproducible_accept_returns_406(self, client: AsyncClient, path):
        response = await client.get(path, headers={"Accept": "application/xml"})

        assert response.status_code == 406
        assert response.json()["request_id"] == response.headers["x-request-id"]

    @pytest.mark.parametrize(
        "accept",
        ["application/json", "*/*", "application/*;q=0.5", "text/html, */*;q=0.1"],
    )
    async def test_json_compatible_accept_is_served(
        self, client: AsyncClient, accept
    ):
        response = await client.get("/habits", headers={"Accept": accept})

        assert response.status_code == 200

    async def test_error_bodies_carry_request_id(self, client: AsyncClient):
        response = await client.get(
            "/habits/h_missing", headers={"X-Request-Id": "req-123"}
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "Habit not found", "request_id": "req-123"}


class TestCreateHabit:
    """Tests for POST /habits."""

    async def test_creates_habit_with_location_and_links(self, client: AsyncClient):
        response = await client.post("/habits", json=_habit_payload())

        assert response.status_code == 201
        body = response.json()
        assert body["id"].startswith("h_")
        assert body["status"] == "ongoing"
        assert response.headers["location"] == f"http://test/habits/{body['id']}"
        assert "self" in _links_by_rel(body["links"])

        fetched = await client.get(response.headers["location"])
        assert fetched.json()["name"] == "Morning run"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "ab"},
            {"target": {"value": 5, "unit": "parsecs"}},
            {"target": {"value": 0, "unit": "km"}},
            {"frequency": {"type": "daily", "times_per_period": 0}},
            {"type": "binary", "target": {"value": 1, "unit": "km"}},
            {"end_date": (date.today() - timedelta(days=1)).isoformat()},
            {"milestone": {"target": 0}},
        ],
    )
    async def test_invalid_payload_returns_422(self, client: AsyncClient, overrides):
        response = await client.post("/habits", json=_habit_payload(**overrides))

        assert response.status_code == 422
        assert isinstance(response.json()["detail"], list)
        assert response.json()["request_id"] == response.headers["x-request-id"]

    async def test_binary_habit_with_sessions(self, client: AsyncClient):
        response = await client.post(
            "/habits",
            json=_habit_payload(type="binary", target={"value": 1, "unit": "sessions"}),
        )

        assert response.status_code == 201


class TestUpdateHabit:
    """Tests for PUT /habits/{habit_id}."""

    async def test_updates_habit(self, client: AsyncClient, db_session: AsyncSession):
        habit = await create_async(HabitFactory, db_session)

        response = await client.put(
            f"/habits/{habit.id}", json=_habit_payload(name="Evening run")
        )

        assert response.status_code == 204
        fetched = (await client.get(f"/habits/{habit.id}")).json()
        assert fetched["name"] == "Evening run"
        assert fetched["target"] == {"value": 5, "unit": "km"}
        assert fetched["updated_at_utc"] is not None

    async def test_missing_habit_returns_404(self, client: AsyncClient):
        response = await client.put("/habits/h_missing", json=_habit_payload())

        assert response.status_code == 404


class TestPatchHabit:
    """Tests for PATCH /habits/{habit_id}."""

    async def test_patches_name(self, client: AsyncClient, db_session: AsyncSession):
        habit = await create_async(HabitFactory, db_session)

        response = await client.patch(
            f"/habits/{habit.id}",
            json=[{"op": "replace", "path": "/name", "value": "Patched"}],
            headers={"Content-Type": "application/json-patch+json"},
        )

        assert response.status_code == 204
        fetched = (await client.get(f"/habits/{habit.id}")).json()
        assert fetched["name"] == "Patched"

    async def test_unapplicable_patch_returns_400(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        habit = await create_async(HabitFactory, db_session)

        response = await client.patch(
            f"/habits/{habit.id}",
            json=[{"op": "test", "path": "/name", "value": "not the name"}],
        )

        assert response.status_code == 400

    async def test_invalid_result_returns_422(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        habit = await create_async(HabitFactory, db_session)

        response = await client.patch(
            f"/habits/{habit.id}",
            json=[{"op": "replace", "path": "/name", "value": "x"}],
        )

        assert response.status_code == 422

    async def test_unknown_operation_returns_422(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        habit = await create_async(HabitFactory, db_session)

        response = await client.patch(
            f"/habits/{habit.id}", json=[{"op": "frobnicate", "path": "/name"}]
        )

        assert response.status_code == 422

    async def test_missing_habit_returns_404(self, client: AsyncClient):
        response = await client.patch(
            "/habits/h_missing",
            json=[{"op": "replace", "path": "/name", "value": "Patched"}],
        )

        assert response.status_code == 404


class TestDeleteHabit:
    """Tests for DELETE /habits/{habit_id}."""

    async def test_deletes_habit(self, client: AsyncClient, db_session: AsyncSession):
        habit = await create_async(HabitFactory, db_session)

        response = await client.delete(f"/habits/{habit.id}")

        assert response.status_code == 204
        db_session.expunge_all()
        assert await db_session.get(Habit, habit.id) is None

    async def test_missing_habit_returns_410(self, client: AsyncClient):
        response = await client.delete("/habits/h_missing")

        assert response.status_code == 410
