"""Models package exports."""

from taskmaster.models.todo import (
    BulkDeleteRequest,
    BulkUpdateRequest,
    Priority,
    SortBy,
    Todo,
    TodoCreate,
    TodoFilters,
    TodoPage,
    TodoStats,
    TodoUpdate,
)
from taskmaster.models.user import User

__all__ = [
    "BulkDeleteRequest",
    "BulkUpdateRequest",
    "Priority",
    "SortBy",
    "Todo",
    "TodoCreate",
    "TodoFilters",
    "TodoPage",
    "TodoStats",
    "TodoUpdate",
    "User",
]
