"""Todo API endpoints."""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from taskmaster.api.dependencies import (
    RequireOwnership,
    get_current_user,
    get_database,
)
from taskmaster.database import Database
from taskmaster.models.todo import (
    BulkDeleteRequest,
    BulkUpdateRequest,
    Todo,
    TodoCreate,
    TodoFilters,
    TodoUpdate,
)
from taskmaster.models.user import User
from taskmaster.services.todo_repository import (
    BULK_UPDATABLE_COLUMNS,
    DEFAULT_LIST_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    TodoRepository,
    parse_non_negative_int,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/todos", tags=["Todos"])

require_todo_owner = RequireOwnership(TodoRepository, id_param="todo_id")

UPDATE_FIELDS = ["title", "description", "completed", "priority", "dueDate", "category", "tags"]
BULK_UPDATE_FIELDS = list(BULK_UPDATABLE_COLUMNS)


def _format_todo(todo: Todo) -> dict:
    return todo.model_dump(mode="json", by_alias=True)


def _parse_completed(value: Optional[str]) -> Optional[bool]:
    """Only the literal strings "true" and "false" filter by completion."""
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def _no_fields(allowed: list[str]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": "No valid fields to update", "allowedFields": allowed},
    )


@router.get("")
async def list_todos(
    completed: Optional[str] = Query(default=None),
    priority: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    limit: Optional[str] = Query(default=None),
    skip: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    due_before: Optional[datetime] = Query(default=None, alias="dueBefore"),
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> dict:
    """List the caller's todos with filters, sorting and pagination."""
    filters = TodoFilters(
        completed=_parse_completed(completed),
        priority=priority,
        category=category,
        search=search,
        sort_by=sort_by,
        limit=parse_non_negative_int(limit, DEFAULT_LIST_LIMIT),
        skip=parse_non_negative_int(skip, 0),
        start_date=start_date,
        end_date=end_date,
        due_before=due_before,
    )

    page = await TodoRepository(db).list_todos(current_user.id, filters)
    return {"success": True, "data": page.model_dump(mode="json", by_alias=True)}


@router.get("/stats")
async def get_stats(
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> dict:
    """Total, completed, pending and overdue counts for the caller."""
    stats = await TodoRepository(db).get_stats(current_user.id)
    return {"success": True, "data": stats.model_dump()}


@router.get("/search/{query}")
async def search_todos(
    query: str,
    limit: Optional[str] = Query(default=None),
    skip: Optional[str] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> dict:
    """Case-insensitive substring search over title and description."""
    page = await TodoRepository(db).search(
        current_user.id,
        query,
        limit=parse_non_negative_int(limit, DEFAULT_SEARCH_LIMIT),
        skip=parse_non_negative_int(skip, 0),
    )

    data = page.model_dump(mode="json", by_alias=True)
    data["searchQuery"] = query
    return {"success": True, "data": data}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_todo(
    request: TodoCreate,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> dict:
    """Create a todo owned by the caller."""
    todo = await TodoRepository(db).create(current_user.id, request)
    return {
        "success": True,
        "message": "Todo created successfully",
        "data": _format_todo(todo),
    }


@router.delete("")
async def bulk_delete_todos(
    request: BulkDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> dict:
    """Delete the listed todos owned by the caller; other ids are skipped."""
    deleted = await TodoRepository(db).bulk_delete(request.ids, current_user.id)
    return {
        "success": True,
        "message": f"{deleted} todo(s) deleted successfully",
        "deletedCount": deleted,
    }


@router.patch("/bulk-update")
async def bulk_update_todos(
    request: BulkUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> dict:
    """Set completed/priority/category on the listed todos owned by the caller."""
    changes = request.updates.changes()
    if not changes:
        raise _no_fields(BULK_UPDATE_FIELDS)

    modified = await TodoRepository(db).bulk_update(request.ids, current_user.id, changes)
    return {
        "success": True,
        "message": f"{modified} todo(s) updated successfully",
        "modifiedCount": modified,
    }


@router.get("/{todo_id}")
async def get_todo(
    todo_id: str,
    todo: Todo = Depends(require_todo_owner),
) -> dict:
    return {"success": True, "data": _format_todo(todo)}


@router.put("/{todo_id}")
async def update_todo(
    todo_id: str,
    request: TodoUpdate,
    todo: Todo = Depends(require_todo_owner),
    db: Database = Depends(get_database),
) -> dict:
    """Update any of title, description, completed, priority, dueDate, category, tags."""
    changes = request.changes()
    if not changes:
        raise _no_fields(UPDATE_FIELDS)

    updated = await TodoRepository(db).update(todo.id, todo.user_id, changes)
    if updated is None:
        raise HTTPException(status_code=404, detail="Resource not found")

    return {
        "success": True,
        "message": "Todo updated successfully",
        "data": _format_todo(updated),
    }


@router.patch("/{todo_id}/toggle")
async def toggle_todo(
    todo_id: str,
    todo: Todo = Depends(require_todo_owner),
    db: Database = Depends(get_database),
) -> dict:
    """Flip the completed flag."""
    toggled = await TodoRepository(db).toggle(todo.id, todo.user_id)
    if toggled is None:
        raise HTTPException(status_code=404, detail="Resource not found")

    state = "completed" if toggled.completed else "pending"
    return {
        "success": True,
        "message": f"Todo marked as {state}",
        "data": _format_todo(toggled),
    }


@router.delete("/{todo_id}")
async def delete_todo(
    todo_id: str,
    todo: Todo = Depends(require_todo_owner),
    db: Database = Depends(get_database),
) -> dict:
    await TodoRepository(db).delete(todo.id, todo.user_id)
    return {"success": True, "message": "Todo deleted successfully"}
