"""Todo repository: per-user queries, filters, sorting, statistics, bulk writes."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

import structlog

from taskmaster.database import Database, affected_rows
from taskmaster.models.todo import (
    SortBy,
    Todo,
    TodoCreate,
    TodoFilters,
    TodoOwner,
    TodoPage,
    TodoStats,
)

logger = structlog.get_logger(__name__)

DEFAULT_LIST_LIMIT = 50
DEFAULT_SEARCH_LIMIT = 20
MAX_PAGINATION_VALUE = 2**63 - 1
# At most 19 digits: enough for a bigint, short of int() digit limits
LEADING_INT = re.compile(r"^\s*([+-]?\d{1,19})(?!\d)")

TODO_FIELDS = """
    t.id, t.title, t.description, t.completed, t.priority, t.due_date,
    t.completed_at, t.tags, t.category, t.created_at, t.updated_at,
    u.id AS owner_id, u.username AS owner_username,
    u.first_name AS owner_first_name, u.last_name AS owner_last_name
"""

PRIORITY_RANK = (
    "CASE t.priority WHEN 'high' THEN 3 WHEN 'medium' THEN 2 WHEN 'low' THEN 1 ELSE 0 END"
)

SORT_ORDERS = {
    SortBy.DUE_DATE: "t.due_date ASC NULLS FIRST, t.created_at DESC",
    SortBy.PRIORITY: f"{PRIORITY_RANK} DESC, t.created_at DESC",
    SortBy.TITLE: "t.title ASC",
    SortBy.COMPLETED: "t.completed ASC, t.created_at DESC",
}
DEFAULT_SORT = "t.created_at DESC"

UPDATABLE_COLUMNS = ("title", "description", "priority", "due_date", "category", "tags")
BULK_UPDATABLE_COLUMNS = ("completed", "priority", "category")


def _select_from(source: str) -> str:
    return f"SELECT {TODO_FIELDS} FROM {source} t JOIN users u ON u.id = t.user_id"


def completion_transition(completed_param: str, now_param: str) -> str:
    """SET fragment keeping completed_at in step with a new completed value.

    Pending -> Completed stamps ``now``; Completed -> Pending clears it;
    a write that leaves ``completed`` unchanged keeps the existing stamp.
    """
    return (
        f"completed_at = CASE WHEN {completed_param}::boolean "
        f"THEN COALESCE(completed_at, {now_param}) ELSE NULL END"
    )


def parse_non_negative_int(value: Any, default: int) -> int:
    """Parse a pagination value from its leading digits (``"10abc"`` is 10).

    No leading digits, zero, negatives and values past the bigint range of
    LIMIT/OFFSET all give ``default``.
    """
    if value is None:
        return default
    match = LEADING_INT.match(str(value))
    if match is None:
        return default
    parsed = int(match.group(1))
    if parsed <= 0 or parsed > MAX_PAGINATION_VALUE:
        return default
    return parsed


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def order_by_clause(sort_by: Optional[str]) -> str:
    """ORDER BY expression for a sortBy value; unknown values use newest first."""
    try:
        order = SORT_ORDERS[SortBy(sort_by)]
    except ValueError:
        order = DEFAULT_SORT
    # Stable pagination across equal sort keys
    return f"{order}, t.id"


def build_where(user_id: UUID, filters: TodoFilters) -> tuple[str, list]:
    """Build the WHERE clause and params for a filtered listing.

    The owner condition is always first and comes from ``user_id`` only.
    """
    conditions = ["t.user_id = $1"]
    params: list = [user_id]

    def add(template: str, value: Any) -> None:
        params.append(value)
        conditions.append(template.format(p=f"${len(params)}"))

    if filters.completed is not None:
        add("t.completed = {p}", filters.completed)

    if filters.priority:
        add("t.priority = {p}", filters.priority)

    if filters.category:
        add("t.category = {p}", filters.category)

    if filters.search:
        add(
            "(t.title ILIKE {p} ESCAPE '\\' OR t.description ILIKE {p} ESCAPE '\\')",
            f"%{escape_like(filters.search)}%",
        )

    if filters.start_date is not None:
        add("t.created_at >= {p}", filters.start_date)

    if filters.end_date is not None:
        add("t.created_at <= {p}", filters.end_date)

    if filters.due_before is not None:
        add("t.due_date <= {p}", filters.due_before)

    return " AND ".join(conditions), params


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _row_to_todo(row) -> Todo:
    return Todo(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        completed=row["completed"],
        priority=row["priority"],
        due_date=row["due_date"],
        completed_at=row["completed_at"],
        tags=list(row["tags"] or []),
        category=row["category"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        user=TodoOwner(
            id=row["owner_id"],
            username=row["owner_username"],
            first_name=row["owner_first_name"],
            last_name=row["owner_last_name"],
        ),
    )


class TodoRepository:
    """Todo persistence. Every user-facing method is scoped to one owner."""

    def __init__(self, db: Database):
        self.db = db

    async def get_by_id(self, todo_id: UUID) -> Optional[Todo]:
        """Load a todo regardless of owner (used by the ownership check)."""
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(f"{_select_from('todos')} WHERE t.id = $1", todo_id)

        return _row_to_todo(row) if row else None

    async def list_todos(self, user_id: UUID, filters: TodoFilters) -> TodoPage:
        """Return one page of the user's todos matching ``filters``."""
        where_clause, params = build_where(user_id, filters)
        limit_idx = len(params) + 1

        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                {_select_from('todos')}
                WHERE {where_clause}
                ORDER BY {order_by_clause(filters.sort_by)}
                LIMIT ${limit_idx} OFFSET ${limit_idx + 1}
                """,
                *params,
                filters.limit,
                filters.skip,
            )
            total = await conn.fetchval(
                f"SELECT COUNT(*) FROM todos t WHERE {where_clause}",
                *params,
            )

        return TodoPage(
            todos=[_row_to_todo(row) for row in rows],
            total=total or 0,
            limit=filters.limit,
            skip=filters.skip,
        )

    async def search(
        self,
        user_id: UUID,
        query: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
        skip: int = 0,
    ) -> TodoPage:
        """Case-insensitive substring search over title and description."""
        filters = TodoFilters(search=query, limit=limit, skip=skip)
        return await self.list_todos(user_id, filters)

    async def get_stats(self, user_id: UUID) -> TodoStats:
        """Total, completed, pending and overdue counts.

        One aggregate statement, so all four counts see the same snapshot.
        """
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    COUNT(*) AS total,
                    COUNT(*) FILTER (WHERE completed) AS completed,
                    COUNT(*) FILTER (WHERE NOT completed) AS pending,
                    COUNT(*) FILTER (WHERE NOT completed AND due_date < $2) AS overdue
                FROM todos
                WHERE user_id = $1
                """,
                user_id,
                datetime.now(timezone.utc),
            )

        if row is None:
            return TodoStats()
        return TodoStats(
            total=row["total"],
            completed=row["completed"],
            pending=row["pending"],
            overdue=row["overdue"],
        )

    async def create(self, user_id: UUID, data: TodoCreate) -> Todo:
        """Insert a pending todo owned by ``user_id``."""
        todo_id = uuid4()
        now = datetime.now(timezone.utc)

        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                WITH inserted AS (
                    INSERT INTO todos
                        (id, user_id, title, description, completed, priority, due_date,
                         completed_at, tags, category, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, FALSE, $5, $6, NULL, $7, $8, $9, $9)
                    RETURNING *
                )
                {_select_from('inserted')}
                """,
                todo_id,
                user_id,
                data.title,
                data.description,
                _plain(data.priority),
                data.due_date,
                data.tags,
                data.category,
                now,
            )

        logger.info("todo_created", todo_id=str(todo_id), user_id=str(user_id))
        return _row_to_todo(row)

    async def update(
        self, todo_id: UUID, user_id: UUID, changes: dict[str, Any]
    ) -> Optional[Todo]:
        """Apply the given field changes to one owned todo.

        Returns:
            The updated Todo, or None if it does not exist for this user
        """
        params: list = [todo_id, user_id, datetime.now(timezone.utc)]
        set_clauses = ["updated_at = $3"]

        for column in UPDATABLE_COLUMNS:
            if column in changes:
                params.append(_plain(changes[column]))
                set_clauses.append(f"{column} = ${len(params)}")

        if "completed" in changes:
            params.append(changes["completed"])
            set_clauses.append(f"completed = ${len(params)}")
            set_clauses.append(completion_transition(f"${len(params)}", "$3"))

        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                WITH changed AS (
                    UPDATE todos
                    SET {', '.join(set_clauses)}
                    WHERE id = $1 AND user_id = $2
                    RETURNING *
                )
                {_select_from('changed')}
                """,
                *params,
            )

        if row is None:
            return None

        logger.info(
            "todo_updated",
            todo_id=str(todo_id),
            user_id=str(user_id),
            fields_updated=sorted(changes),
        )
        return _row_to_todo(row)

    async def toggle(self, todo_id: UUID, user_id: UUID) -> Optional[Todo]:
        """Flip ``completed`` and stamp or clear ``completed_at`` accordingly."""
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                WITH changed AS (
                    UPDATE todos
                    SET completed = NOT completed,
                        completed_at = CASE WHEN completed THEN NULL ELSE $3::timestamptz END,
                        updated_at = $3
                    WHERE id = $1 AND user_id = $2
                    RETURNING *
                )
                {_select_from('changed')}
                """,
                todo_id,
                user_id,
                datetime.now(timezone.utc),
            )

        if row is None:
            return None

        logger.info(
            "todo_toggled",
            todo_id=str(todo_id),
            user_id=str(user_id),
            completed=row["completed"],
        )
        return _row_to_todo(row)

    async def delete(self, todo_id: UUID, user_id: UUID) -> bool:
        async with self.db.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM todos WHERE id = $1 AND user_id = $2",
                todo_id,
                user_id,
            )

        deleted = result == "DELETE 1"
        if deleted:
            logger.info("todo_deleted", todo_id=str(todo_id), user_id=str(user_id))
        return deleted

    async def bulk_delete(self, ids: Iterable[UUID], user_id: UUID) -> int:
        """Delete the listed todos that belong to ``user_id``.

        Ids owned by someone else (or unknown) are skipped without error.
        """
        async with self.db.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM todos WHERE id = ANY($1::uuid[]) AND user_id = $2",
                list(ids),
                user_id,
            )

        count = affected_rows(result)
        logger.info("todos_bulk_deleted", user_id=str(user_id), deleted=count)
        return count

    async def bulk_update(
        self, ids: Iterable[UUID], user_id: UUID, changes: dict[str, Any]
    ) -> int:
        """Apply completed/priority/category to the listed owned todos.

        Other keys in ``changes`` are ignored. Only rows whose values actually
        change are written and counted.
        """
        params: list = [list(ids), user_id, datetime.now(timezone.utc)]
        set_clauses = ["updated_at = $3"]
        differs = []

        for column in BULK_UPDATABLE_COLUMNS:
            if column not in changes:
                continue
            params.append(_plain(changes[column]))
            placeholder = f"${len(params)}"
            set_clauses.append(f"{column} = {placeholder}")
            differs.append(f"{column} IS DISTINCT FROM {placeholder}")
            if column == "completed":
                set_clauses.append(completion_transition(placeholder, "$3"))

        if not differs:
            return 0

        async with self.db.acquire() as conn:
            result = await conn.execute(
                f"""
                UPDATE todos
                SET {', '.join(set_clauses)}
                WHERE id = ANY($1::uuid[]) AND user_id = $2
                  AND ({' OR '.join(differs)})
                """,
                *params,
            )

        count = affected_rows(result)
        logger.info(
            "todos_bulk_updated",
            user_id=str(user_id),
            modified=count,
            fields_updated=sorted(c for c in BULK_UPDATABLE_COLUMNS if c in changes),
        )
        return count

