"""Unit tests for /api/todos endpoints.

TodoRepository is mocked; authentication and the ownership check are
replaced through dependency overrides.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from taskmaster.api.dependencies import get_current_user
from taskmaster.api.todos import require_todo_owner
from taskmaster.models.todo import TodoPage, TodoStats
from taskmaster.services.todo_repository import _row_to_todo
from tests.conftest import make_todo_row, make_user


@pytest.fixture
def owner(client):
    from taskmaster.main import app

    user = make_user()
    app.dependency_overrides[get_current_user] = lambda: user
    return user


@pytest.fixture
def repo():
    with patch("taskmaster.api.todos.TodoRepository") as MockRepository:
        instance = MockRepository.return_value
        for method in (
            "list_todos",
            "search",
            "get_stats",
            "create",
            "update",
            "toggle",
            "delete",
            "bulk_delete",
            "bulk_update",
        ):
            setattr(instance, method, AsyncMock())
        yield instance


@pytest.fixture
def owned_todo(client, owner):
    from taskmaster.main import app

    todo = _row_to_todo(make_todo_row(owner=owner))
    app.dependency_overrides[require_todo_owner] = lambda: todo
    return todo


# ---------------------------------------------------------------------------
# GET /api/todos
# ---------------------------------------------------------------------------

class TestListTodos:
    def test_defaults(self, client, owner, repo):
        repo.list_todos.return_value = TodoPage(
            todos=[_row_to_todo(make_todo_row(owner=owner))], total=1, limit=50, skip=0
        )

        response = client.get("/api/todos")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["total"] == 1
        assert body["data"]["limit"] == 50
        assert body["data"]["hasMore"] is False
        todo = body["data"]["todos"][0]
        assert todo["user"]["username"] == owner.username
        assert todo["isOverdue"] is False
        assert todo["daysUntilDue"] is None

        user_id, filters = repo.list_todos.call_args.args
        assert user_id == owner.id
        assert filters.limit == 50
        assert filters.skip == 0
        assert filters.completed is None

    def test_query_parameters(self, client, owner, repo):
        repo.list_todos.return_value = TodoPage(todos=[], total=0, limit=10, skip=20)

        response = client.get(
            "/api/todos",
            params={
                "completed": "false",
                "priority": "high",
                "category": "work",
                "search": "report",
                "sortBy": "dueDate",
                "limit": "10",
                "skip": "20",
                "startDate": "2024-01-01T00:00:00Z",
            },
        )

        assert response.status_code == 200
        _, filters = repo.list_todos.call_args.args
        assert filters.completed is False
        assert filters.priority == "high"
        assert filters.category == "work"
        assert filters.search == "report"
        assert filters.sort_by == "dueDate"
        assert filters.limit == 10
        assert filters.skip == 20
        assert filters.start_date == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_bad_pagination_falls_back(self, client, owner, repo):
        repo.list_todos.return_value = TodoPage(todos=[], total=0, limit=50, skip=0)

        response = client.get("/api/todos", params={"limit": "abc", "skip": "-3"})

        assert response.status_code == 200
        _, filters = repo.list_todos.call_args.args
        assert filters.limit == 50
        assert filters.skip == 0

    def test_out_of_range_pagination_falls_back(self, client, owner, repo):
        repo.list_todos.return_value = TodoPage(todos=[], total=0, limit=50, skip=0)

        response = client.get(
            "/api/todos",
            params={"limit": "99999999999999999999", "skip": "99999999999999999999"},
        )

        assert response.status_code == 200
        _, filters = repo.list_todos.call_args.args
        assert filters.limit == 50
        assert filters.skip == 0

    def test_search_pagination_falls_back(self, client, owner, repo):
        repo.search.return_value = TodoPage(todos=[], total=0, limit=20, skip=0)

        client.get("/api/todos/search/milk", params={"limit": "1" * 25, "skip": "3abc"})

        repo.search.assert_awaited_once_with(owner.id, "milk", limit=20, skip=3)

    def test_completed_only_literal_strings(self, client, owner, repo):
        repo.list_todos.return_value = TodoPage(todos=[], total=0, limit=50, skip=0)

        client.get("/api/todos", params={"completed": "yes"})

        _, filters = repo.list_todos.call_args.args
        assert filters.completed is None

    def test_requires_auth(self, client, repo):
        response = client.get("/api/todos")

        assert response.status_code == 401
        repo.list_todos.assert_not_called()


# ---------------------------------------------------------------------------
# Stats and search
# ---------------------------------------------------------------------------

class TestStatsAndSearch:
    def test_stats(self, client, owner, repo):
        repo.get_stats.return_value = TodoStats(total=4, completed=1, pending=3, overdue=2)

        response = client.get("/api/todos/stats")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "data": {"total": 4, "completed": 1, "pending": 3, "overdue": 2},
        }
        repo.get_stats.assert_awaited_once_with(owner.id)

    def test_search(self, client, owner, repo):
        repo.search.return_value = TodoPage(todos=[], total=0, limit=20, skip=0)

        response = client.get("/api/todos/search/milk")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["searchQuery"] == "milk"
        assert data["limit"] == 20
        repo.search.assert_awaited_once_with(owner.id, "milk", limit=20, skip=0)


# ---------------------------------------------------------------------------
# POST /api/todos
# ---------------------------------------------------------------------------

class TestCreateTodo:
    def test_create(self, client, owner, repo):
        repo.create.return_value = _row_to_todo(make_todo_row(owner=owner, title="Buy milk"))

        response = client.post(
            "/api/todos",
            json={"title": "  Buy milk  ", "priority": "high", "tags": ["home"]},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Todo created successfully"
        assert body["data"]["title"] == "Buy milk"
        assert body["data"]["completed"] is False

        user_id, payload = repo.create.call_args.args
        assert user_id == owner.id
        assert payload.title == "Buy milk"
        assert payload.priority.value == "high"
        assert payload.category == "general"

    def test_blank_title(self, client, owner, repo):
        response = client.post("/api/todos", json={"title": "   "})

        assert response.status_code == 400
        assert "title: Todo title is required" in response.json()["messages"]
        repo.create.assert_not_called()

    def test_title_too_long(self, client, owner, repo):
        response = client.post("/api/todos", json={"title": "x" * 201})

        assert response.status_code == 400

    def test_bad_priority(self, client, owner, repo):
        response = client.post("/api/todos", json={"title": "t", "priority": "urgent"})

        assert response.status_code == 400

    def test_long_tag(self, client, owner, repo):
        response = client.post("/api/todos", json={"title": "t", "tags": ["x" * 31]})

        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Single-todo routes
# ---------------------------------------------------------------------------

class TestSingleTodo:
    def test_get(self, client, owned_todo):
        response = client.get(f"/api/todos/{owned_todo.id}")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == str(owned_todo.id)

    def test_update(self, client, owned_todo, repo):
        updated = owned_todo.model_copy(update={"title": "Renamed"})
        repo.update.return_value = updated

        response = client.put(f"/api/todos/{owned_todo.id}", json={"title": "Renamed"})

        assert response.status_code == 200
        assert response.json()["message"] == "Todo updated successfully"
        assert response.json()["data"]["title"] == "Renamed"
        repo.update.assert_awaited_once_with(
            owned_todo.id, owned_todo.user_id, {"title": "Renamed"}
        )

    def test_update_clears_due_date(self, client, owned_todo, repo):
        repo.update.return_value = owned_todo

        client.put(f"/api/todos/{owned_todo.id}", json={"dueDate": None})

        _, _, changes = repo.update.call_args.args
        assert changes == {"due_date": None}

    def test_update_no_fields(self, client, owned_todo, repo):
        response = client.put(f"/api/todos/{owned_todo.id}", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "No valid fields to update"
        assert "dueDate" in response.json()["allowedFields"]
        repo.update.assert_not_called()

    def test_update_rejects_unknown_fields(self, client, owned_todo, repo):
        response = client.put(f"/api/todos/{owned_todo.id}", json={"user": str(uuid4())})

        assert response.status_code == 400
        repo.update.assert_not_called()

    def test_update_rejects_null_title(self, client, owned_todo, repo):
        response = client.put(f"/api/todos/{owned_todo.id}", json={"title": None})

        assert response.status_code == 400

    def test_toggle(self, client, owned_todo, repo):
        repo.toggle.return_value = owned_todo.model_copy(
            update={"completed": True, "completed_at": datetime.now(timezone.utc)}
        )

        response = client.patch(f"/api/todos/{owned_todo.id}/toggle")

        assert response.status_code == 200
        assert response.json()["message"] == "Todo marked as completed"
        assert response.json()["data"]["completed"] is True

    def test_toggle_back_to_pending(self, client, owned_todo, repo):
        repo.toggle.return_value = owned_todo

        response = client.patch(f"/api/todos/{owned_todo.id}/toggle")

        assert response.json()["message"] == "Todo marked as pending"

    def test_delete(self, client, owned_todo, repo):
        repo.delete.return_value = True

        response = client.delete(f"/api/todos/{owned_todo.id}")

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Todo deleted successfully"}

    def test_overdue_fields(self, client, owner):
        from taskmaster.main import app

        todo = _row_to_todo(
            make_todo_row(owner=owner, due_date=datetime.now(timezone.utc) - timedelta(days=2))
        )
        app.dependency_overrides[require_todo_owner] = lambda: todo

        data = client.get(f"/api/todos/{todo.id}").json()["data"]

        assert data["isOverdue"] is True
        assert data["daysUntilDue"] <= -1


# ---------------------------------------------------------------------------
# Bulk operations
# ---------------------------------------------------------------------------

class TestBulk:
    def test_bulk_delete(self, client, owner, repo):
        repo.bulk_delete.return_value = 2
        ids = [str(uuid4()), str(uuid4()), str(uuid4())]

        response = client.request("DELETE", "/api/todos", json={"ids": ids})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "2 todo(s) deleted successfully",
            "deletedCount": 2,
        }
        passed_ids, user_id = repo.bulk_delete.call_args.args
        assert [str(i) for i in passed_ids] == ids
        assert user_id == owner.id

    def test_bulk_delete_empty_ids(self, client, owner, repo):
        response = client.request("DELETE", "/api/todos", json={"ids": []})

        assert response.status_code == 400
        repo.bulk_delete.assert_not_called()

    def test_bulk_update(self, client, owner, repo):
        repo.bulk_update.return_value = 3

        response = client.patch(
            "/api/todos/bulk-update",
            json={"ids": [str(uuid4())], "updates": {"completed": True}},
        )

        assert response.status_code == 200
        assert response.json()["modifiedCount"] == 3
        assert response.json()["message"] == "3 todo(s) updated successfully"
        _, user_id, changes = repo.bulk_update.call_args.args
        assert user_id == owner.id
        assert changes == {"completed": True}

    def test_bulk_update_no_fields(self, client, owner, repo):
        response = client.patch(
            "/api/todos/bulk-update", json={"ids": [str(uuid4())], "updates": {}}
        )

        assert response.status_code == 400
        assert response.json()["allowedFields"] == ["completed", "priority", "category"]

    def test_bulk_update_rejects_title(self, client, owner, repo):
        response = client.patch(
            "/api/todos/bulk-update",
            json={"ids": [str(uuid4())], "updates": {"title": "x"}},
        )

        assert response.status_code == 400
        repo.bulk_update.assert_not_called()
