"""Todo models: stored item, request payloads, list filters."""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import Field, computed_field, field_validator

from taskmaster.models.common import CamelModel, StrictCamelModel

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
TAG_MAX_LENGTH = 30
CATEGORY_MAX_LENGTH = 50
DEFAULT_CATEGORY = "general"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SortBy(str, Enum):
    DUE_DATE = "dueDate"
    PRIORITY = "priority"
    TITLE = "title"
    COMPLETED = "completed"


class TodoOwner(CamelModel):
    """Owner summary embedded in every todo."""

    id: UUID
    username: str
    first_name: str
    last_name: str


class Todo(CamelModel):
    """A todo item as stored.

    ``completed_at`` is set iff ``completed`` is true; the repository
    maintains this on every write.
    """

    id: UUID
    title: str
    description: str = ""
    completed: bool = False
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    user: TodoOwner
    tags: list[str] = Field(default_factory=list)
    category: str = DEFAULT_CATEGORY
    created_at: datetime
    updated_at: datetime

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @computed_field(alias="isOverdue")
    @property
    def is_overdue(self) -> bool:
        if self.due_date is None or self.completed:
            return False
        return datetime.now(timezone.utc) > self.due_date

    @computed_field(alias="daysUntilDue")
    @property
    def days_until_due(self) -> Optional[int]:
        if self.due_date is None or self.completed:
            return None
        delta = self.due_date - datetime.now(timezone.utc)
        return math.ceil(delta.total_seconds() / 86400)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _clean_title(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Todo title is required")
    if len(v) > TITLE_MAX_LENGTH:
        raise ValueError(f"Todo title cannot exceed {TITLE_MAX_LENGTH} characters")
    return v


def _clean_description(v: str) -> str:
    v = v.strip()
    if len(v) > DESCRIPTION_MAX_LENGTH:
        raise ValueError(
            f"Todo description cannot exceed {DESCRIPTION_MAX_LENGTH} characters"
        )
    return v


def _clean_tags(tags: list[str]) -> list[str]:
    cleaned = []
    for tag in tags:
        tag = tag.strip()
        if len(tag) > TAG_MAX_LENGTH:
            raise ValueError(f"Tag cannot exceed {TAG_MAX_LENGTH} characters")
        if tag:
            cleaned.append(tag)
    return cleaned


def _clean_category(v: str) -> str:
    v = v.strip()
    if len(v) > CATEGORY_MAX_LENGTH:
        raise ValueError(f"Category cannot exceed {CATEGORY_MAX_LENGTH} characters")
    return v or DEFAULT_CATEGORY


class TodoCreate(CamelModel):
    """Payload for POST /api/todos."""

    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    category: str = DEFAULT_CATEGORY
    tags: list[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def title_valid(cls, v: str) -> str:
        return _clean_title(v)

    @field_validator("description")
    @classmethod
    def description_valid(cls, v: str) -> str:
        return _clean_description(v)

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    @field_validator("tags")
    @classmethod
    def tags_valid(cls, v: list[str]) -> list[str]:
        return _clean_tags(v)

    @field_validator("category")
    @classmethod
    def category_valid(cls, v: str) -> str:
        return _clean_category(v)


class TodoUpdate(StrictCamelModel):
    """Payload for PUT /api/todos/{id}.

    Only keys present in the request are applied; ``dueDate: null``
    clears the due date.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None

    @field_validator("title")
    @classmethod
    def title_valid(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("Todo title cannot be empty")
        return _clean_title(v)

    @field_validator("description")
    @classmethod
    def description_valid(cls, v: Optional[str]) -> str:
        return _clean_description(v or "")

    @field_validator("completed", "priority")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    @field_validator("tags")
    @classmethod
    def tags_valid(cls, v: Optional[list[str]]) -> list[str]:
        return _clean_tags(v or [])

    @field_validator("category")
    @classmethod
    def category_valid(cls, v: Optional[str]) -> str:
        return _clean_category(v or "")

    def changes(self) -> dict:
        """Fields explicitly sent by the client."""
        return self.model_dump(exclude_unset=True)


class BulkTodoUpdate(StrictCamelModel):
    """Fields a bulk update may touch."""

    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    category: Optional[str] = None

    @field_validator("completed", "priority")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    @field_validator("category")
    @classmethod
    def category_valid(cls, v: Optional[str]) -> str:
        return _clean_category(v or "")

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class BulkDeleteRequest(CamelModel):
    """Body of DELETE /api/todos."""

    ids: list[UUID] = Field(..., min_length=1)


class BulkUpdateRequest(CamelModel):
    """Body of PATCH /api/todos/bulk-update."""

    ids: list[UUID] = Field(..., min_length=1)
    updates: BulkTodoUpdate


class TodoFilters(CamelModel):
    """Filter, sort and pagination options for listing a user's todos.

    The owning user is never part of the filter set; the repository
    always scopes queries to the caller.
    """

    completed: Optional[bool] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
    limit: int = 50
    skip: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    due_before: Optional[datetime] = None

    @field_validator("start_date", "end_date", "due_before")
    @classmethod
    def dates_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class TodoPage(CamelModel):
    """One page of todos plus the total match count."""

    todos: list[Todo]
    total: int
    limit: int
    skip: int

    @computed_field(alias="hasMore")
    @property
    def has_more(self) -> bool:
        return self.total > self.skip + len(self.todos)


class TodoStats(CamelModel):
    total: int = 0
    completed: int = 0
    pending: int = 0
    overdue: int = 0
