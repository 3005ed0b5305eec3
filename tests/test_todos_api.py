import os
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

# Import the FastAPI app
from justdo.db import SQLiteRepository  # noqa: E402
from justdo.errors import StoreError  # noqa: E402
from justdo.main import app  # noqa: E402
from justdo.query import CancellationToken  # noqa: E402
from justdo.repositories import InMemoryRepository, get_repository  # noqa: E402
from justdo.routers.todos import _get_cancellation  # noqa: E402

client = TestClient(app)


@pytest.fixture(autouse=True)
def fresh_repository():
    repo = InMemoryRepository()
    app.dependency_overrides[get_repository] = lambda: repo
    yield repo
    app.dependency_overrides.clear()


def create_todo_payload(name="Test Task", due_date="2099-12-25T10:00:00Z", priority=None):
    payload = {"name": name, "dueDate": due_date}
    if priority is not None:
        payload["priority"] = priority
    return payload


def create(name="Test Task", due_date="2099-12-25T10:00:00Z", done=False):
    res = client.post("/api/v1/todos/", json=create_todo_payload(name=name, due_date=due_date))
    assert res.status_code == 201
    todo = res.json()
    if done:
        res = client.patch(f"/api/v1/todos/{todo['id']}", json={"done": True})
        assert res.status_code == 200
        todo = res.json()
    return todo


def assert_todo_shape(todo: dict):
    # Basic structure validation
    for key in ["id", "name", "dueDateUtc", "priority", "done"]:
        assert key in todo
    UUID(todo["id"])
    assert isinstance(todo["name"], str)
    assert isinstance(todo["done"], bool)
    assert todo["priority"] in ("not_set", "low", "medium", "high")
    assert todo["dueDateUtc"].endswith("Z")


def assert_error(res, status_code, code):
    assert res.status_code == status_code
    body = res.json()
    assert isinstance(body.get("errors"), list)
    assert body["errors"]
    assert all(e["error"] == code for e in body["errors"])
    return body["errors"]


class TestHealth:
    def test_health_check(self):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")


class TestTodosCRUD:
    def test_create_todo(self):
        res = client.post("/api/v1/todos/", json=create_todo_payload(name="  Buy milk ", priority="HIGH"))
        assert res.status_code == 201
        todo = res.json()
        assert_todo_shape(todo)
        assert todo["name"] == "Buy milk"
        assert todo["priority"] == "high"
        assert todo["done"] is False
        assert todo["dueDateUtc"] == "2099-12-25T10:00:00Z"

    def test_create_requires_utc_due_date(self):
        naive = client.post("/api/v1/todos/", json=create_todo_payload(due_date="2099-12-25T10:00:00"))
        assert_error(naive, 400, "e_invalid_data")
        offset = client.post("/api/v1/todos/", json=create_todo_payload(due_date="2099-12-25T10:00:00+02:00"))
        messages = assert_error(offset, 400, "e_invalid_data")
        assert messages[0]["message"].startswith("dueDate has invalid data")

    def test_create_validation_error_name_empty(self):
        res = client.post("/api/v1/todos/", json={"name": "  ", "dueDate": "2099-12-25T10:00:00Z"})
        messages = assert_error(res, 400, "e_invalid_data")
        assert messages[0]["message"].startswith("name has invalid data")

    def test_get_todo_and_not_found(self):
        todo = create(name="Read book")
        res_get = client.get(f"/api/v1/todos/{todo['id']}")
        assert res_get.status_code == 200
        fetched = res_get.json()["todo"]
        assert fetched == todo

        missing = "00000000-0000-4000-8000-000000000000"
        errors = assert_error(client.get(f"/api/v1/todos/{missing}"), 404, "e_object_not_found")
        assert errors[0]["message"] == f"Cannot find todo with ID [{missing}]"

    def test_get_invalid_id(self):
        assert_error(client.get("/api/v1/todos/not-a-uuid"), 400, "e_invalid_data")

    def test_patch_partial_update(self):
        todo = create(name="Partial")
        res_patch = client.patch(f"/api/v1/todos/{todo['id']}", json={"done": True, "priority": "low"})
        assert res_patch.status_code == 200
        patched = res_patch.json()
        assert patched["done"] is True
        assert patched["priority"] == "low"
        # name and due date remain unchanged
        assert patched["name"] == "Partial"
        assert patched["dueDateUtc"] == todo["dueDateUtc"]

        missing = "00000000-0000-4000-8000-000000000001"
        assert_error(client.patch(f"/api/v1/todos/{missing}", json={"name": "Nope"}), 404, "e_object_not_found")

    def test_update_ignores_empty_name(self):
        todo = create(name="Keep me")
        for blank in ("", "   "):
            res = client.patch(f"/api/v1/todos/{todo['id']}", json={"name": blank, "done": True})
            assert res.status_code == 200
            assert res.json()["name"] == "Keep me"
            assert res.json()["done"] is True
        too_long = client.put(f"/api/v1/todos/{todo['id']}", json={"name": "x" * 201})
        assert_error(too_long, 400, "e_invalid_data")

    def test_update_converts_due_date_to_utc(self):
        todo = create(name="Shift")
        res = client.put(f"/api/v1/todos/{todo['id']}", json={"dueDate": "2100-01-01T12:00:00+02:00"})
        assert res.status_code == 200
        assert res.json()["dueDateUtc"] == "2100-01-01T10:00:00Z"

    def test_update_rejects_naive_due_date(self):
        todo = create(name="Naive")
        res = client.patch(f"/api/v1/todos/{todo['id']}", json={"dueDate": "not-a-date"})
        assert_error(res, 400, "e_invalid_data")
        res = client.patch(f"/api/v1/todos/{todo['id']}", json={"dueDate": "2100-01-01T12:00:00"})
        assert_error(res, 400, "e_invalid_data")

    def test_delete_todo(self):
        todo = create(name="ToDelete")
        res_del = client.delete(f"/api/v1/todos/{todo['id']}")
        assert res_del.status_code == 204
        assert res_del.text == ""

        assert_error(client.get(f"/api/v1/todos/{todo['id']}"), 404, "e_object_not_found")
        # Deleting again should still be 404
        assert_error(client.delete(f"/api/v1/todos/{todo['id']}"), 404, "e_object_not_found")


class TestListQuery:
    def seed_scenario(self):
        a = create(name="Buy milk", due_date="2020-01-10T00:00:00Z")
        b = create(name="Pay bills", due_date="2020-01-10T00:00:00Z", done=True)
        c = create(name="Apple", due_date="2020-02-01T00:00:00Z")
        return a, b, c

    def test_grouped_by_due_date_descending(self):
        a, b, c = self.seed_scenario()
        res = client.post("/api/v1/todos/query/list", json={"filters": {"done": "all"}})
        assert res.status_code == 200
        groups = res.json()["todoList"]
        assert list(groups) == ["2020-02-01T00:00:00Z", "2020-01-10T00:00:00Z"]
        assert [t["id"] for t in groups["2020-01-10T00:00:00Z"]] == [a["id"], b["id"]]
        assert [t["id"] for t in groups["2020-02-01T00:00:00Z"]] == [c["id"]]
        for todos in groups.values():
            for todo in todos:
                assert_todo_shape(todo)

    def test_absent_filters_return_every_todo(self):
        self.seed_scenario()
        for res in (client.post("/api/v1/todos/query/list"), client.post("/api/v1/todos/query/list", json={})):
            assert res.status_code == 200
            groups = res.json()["todoList"]
            assert [t["name"] for todos in groups.values() for t in todos] == ["Apple", "Buy milk", "Pay bills"]

    def test_empty_filters_return_only_done(self):
        self.seed_scenario()
        res = client.post("/api/v1/todos/query/list", json={"filters": {}})
        assert res.status_code == 200
        groups = res.json()["todoList"]
        assert [t["name"] for todos in groups.values() for t in todos] == ["Pay bills"]

    def test_group_and_todo_order(self):
        self.seed_scenario()
        body = {
            "filters": {"done": "ALL"},
            "groupOrder": {"field": "DUEDATEUTC", "direction": "Asc"},
            "todoOrder": [{"field": "name", "direction": "desc"}],
        }
        groups = client.post("/api/v1/todos/query/list", json=body).json()["todoList"]
        assert list(groups) == ["2020-01-10T00:00:00Z", "2020-02-01T00:00:00Z"]
        assert [t["name"] for t in groups["2020-01-10T00:00:00Z"]] == ["Pay bills", "Buy milk"]

    def test_unknown_order_fields_fall_back_to_defaults(self):
        self.seed_scenario()
        body = {
            "filters": {"done": "all"},
            "groupOrder": {"field": "name", "direction": "asc"},
            "todoOrder": [{"field": "priority", "direction": "asc"}],
        }
        groups = client.post("/api/v1/todos/query/list", json=body).json()["todoList"]
        assert list(groups) == ["2020-02-01T00:00:00Z", "2020-01-10T00:00:00Z"]
        assert [t["name"] for t in groups["2020-01-10T00:00:00Z"]] == ["Buy milk", "Pay bills"]

    def test_name_and_date_filters(self):
        create(name="Early bird", due_date="2020-01-15T01:00:00Z")
        create(name="Day before", due_date="2020-01-14T23:59:00Z")
        create(name="early riser", due_date="2020-01-16T09:00:00Z")
        body = {
            "filters": {
                "done": "not_done",
                "name": "EARLY",
                "dueDate": {"from": "2020-01-15T23:00:00Z"},
            }
        }
        groups = client.post("/api/v1/todos/query/list", json=body).json()["todoList"]
        assert list(groups) == ["2020-01-16T09:00:00Z", "2020-01-15T01:00:00Z"]

    def test_non_utc_bound_is_rejected(self):
        body = {"filters": {"dueDate": {"from": "2020-01-15T23:00:00"}}}
        res = client.post("/api/v1/todos/query/list", json=body)
        messages = assert_error(res, 400, "e_invalid_data")
        assert messages[0]["message"].startswith("filters.dueDate.from has invalid data")

    def test_invalid_order_entries_are_rejected(self):
        res = client.post(
            "/api/v1/todos/query/list",
            json={"todoOrder": [{"field": ""}, {"field": "name", "direction": "sideways"}]},
        )
        messages = assert_error(res, 400, "e_invalid_data")
        assert len(messages) == 2

    def test_invalid_done_value_is_rejected(self):
        res = client.post("/api/v1/todos/query/list", json={"filters": {"done": "maybe"}})
        assert_error(res, 400, "e_invalid_data")


class TestPagedQuery:
    def seed_todos(self, count=5):
        base = datetime(2020, 3, 1, tzinfo=timezone.utc)
        return [
            create(name=f"Task {i}", due_date=(base + timedelta(days=i % 2)).isoformat().replace("+00:00", "Z"))
            for i in range(count)
        ]

    def test_first_page(self):
        created = self.seed_todos(5)
        body = {"filters": {"done": "all"}, "page": 0, "itemsPerPage": 2}
        res = client.post("/api/v1/todos/query/paged", json=body)
        assert res.status_code == 200
        paged = res.json()["todoPaged"]
        assert paged["totalItems"] == 5
        assert paged["pageNum"] == 0
        assert paged["itemsPerPage"] == 2
        ids = [t["id"] for todos in paged["items"].values() for t in todos]
        assert sorted(ids) == sorted(t["id"] for t in created[:2])

    def test_defaults(self):
        self.seed_todos(3)
        paged = client.post("/api/v1/todos/query/paged", json={"filters": {"done": "all"}}).json()["todoPaged"]
        assert paged["pageNum"] == 0
        assert paged["itemsPerPage"] == 25
        assert paged["totalItems"] == 3
        assert sum(len(v) for v in paged["items"].values()) == 3

    def test_total_is_independent_of_page(self):
        self.seed_todos(5)
        totals = set()
        for page in range(4):
            body = {"filters": {"done": "all"}, "page": page, "itemsPerPage": 2}
            paged = client.post("/api/v1/todos/query/paged", json=body).json()["todoPaged"]
            totals.add(paged["totalItems"])
            assert sum(len(v) for v in paged["items"].values()) <= 2
        assert totals == {5}

    def test_invalid_paging(self):
        assert_error(client.post("/api/v1/todos/query/paged", json={"page": -1}), 400, "e_invalid_data")
        assert_error(client.post("/api/v1/todos/query/paged", json={"itemsPerPage": 0}), 400, "e_invalid_data")
        assert_error(client.post("/api/v1/todos/query/paged", json={"itemsPerPage": 5000}), 400, "e_invalid_data")

    def test_page_beyond_addressable_offset_is_rejected(self):
        body = {"page": 10**17, "itemsPerPage": 1000}
        assert_error(client.post("/api/v1/todos/query/paged", json=body), 400, "e_invalid_data")

    def test_far_page_on_sqlite_is_empty(self, tmp_path):
        repo = SQLiteRepository(str(tmp_path / "todos.db"))
        app.dependency_overrides[get_repository] = lambda: repo
        create(name="Only", done=True)
        body = {"filters": {"done": "all"}, "page": 10**15, "itemsPerPage": 1000}
        res = client.post("/api/v1/todos/query/paged", json=body)
        assert res.status_code == 200
        paged = res.json()["todoPaged"]
        assert paged["items"] == {}
        assert paged["totalItems"] == 1


class _BrokenRepository(InMemoryRepository):
    def __init__(self, error):
        super().__init__()
        self._error = error

    def query(self, predicate, offset=0, limit=None, cancel=None):
        raise self._error

    def count(self, predicate, cancel=None):
        raise self._error


class TestFailures:
    def test_cancelled_query(self):
        create(name="Anything", done=True)

        def cancelled():
            token = CancellationToken()
            token.cancel()
            return token

        app.dependency_overrides[_get_cancellation] = cancelled
        for path in ("/api/v1/todos/query/list", "/api/v1/todos/query/paged"):
            errors = assert_error(client.post(path, json={}), 503, "e_cancelled")
            assert errors[0]["message"] == "Request was cancelled"

    def test_store_failure_is_opaque(self):
        repo = _BrokenRepository(StoreError("disk I/O error at /var/lib/secret.db"))
        app.dependency_overrides[get_repository] = lambda: repo
        errors = assert_error(client.post("/api/v1/todos/query/list", json={}), 500, "e_db_conn")
        assert errors[0]["message"] == "DB Error"

    def test_unexpected_error(self):
        repo = _BrokenRepository(RuntimeError("boom"))
        app.dependency_overrides[get_repository] = lambda: repo
        quiet_client = TestClient(app, raise_server_exceptions=False)
        errors = assert_error(quiet_client.post("/api/v1/todos/query/paged", json={}), 500, "e_unknown")
        assert errors[0]["message"] == "Unexpected error"
