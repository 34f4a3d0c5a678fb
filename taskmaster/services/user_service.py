"""Credential store: user records, password hashes and refresh-token sets."""

import hashlib
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import asyncpg
import bcrypt
import structlog

from taskmaster.database import Database, affected_rows
from taskmaster.exceptions import DuplicateFieldError, InvalidCredentialsError
from taskmaster.models.auth import PASSWORD_MAX_BYTES
from taskmaster.models.user import User

logger = structlog.get_logger(__name__)

USER_COLUMNS = """
    id, username, email, first_name, last_name, preferences,
    is_active, last_active, created_at, updated_at
"""

# Unique constraint name -> offending field
_CONSTRAINT_FIELDS = {
    "users_username_key": "username",
    "users_email_key": "email",
}


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        preferences=row["preferences"] or {},
        is_active=row["is_active"],
        last_active=row["last_active"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def duplicate_field_error(exc: asyncpg.UniqueViolationError) -> DuplicateFieldError:
    field = _CONSTRAINT_FIELDS.get(getattr(exc, "constraint_name", None), "field")
    return DuplicateFieldError(field)


class UserService:
    """Service for user records and their active refresh tokens."""

    def __init__(self, db: Database):
        self.db = db

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt()
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        Passwords over bcrypt's 72-byte input limit never match.
        """
        encoded = password.encode("utf-8")
        if len(encoded) > PASSWORD_MAX_BYTES:
            return False
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def find_conflict(self, username: str, email: str) -> Optional[str]:
        """Return "email" or "username" if either is already registered.

        An email collision is reported ahead of a username collision.
        """
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT username, email FROM users
                WHERE email = $1 OR username = $2
                ORDER BY (email = $1) DESC
                LIMIT 1
                """,
                email,
                username,
            )

        if row is None:
            return None
        return "email" if row["email"] == email else "username"

    async def create_user(
        self,
        username: str,
        email: str,
        first_name: str,
        last_name: str,
        password: str,
        preferences: Optional[dict[str, Any]] = None,
    ) -> User:
        """Create a user with a hashed password.

        Raises:
            DuplicateFieldError: If the username or email is taken
        """
        user_id = uuid4()
        now = datetime.now(timezone.utc)
        password_hash = self.hash_password(password)

        try:
            async with self.db.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users
                        (id, username, email, first_name, last_name, password_hash,
                         preferences, is_active, last_active, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, TRUE, $8, $8, $8)
                    RETURNING {USER_COLUMNS}
                    """,
                    user_id,
                    username,
                    email,
                    first_name,
                    last_name,
                    password_hash,
                    preferences or {},
                    now,
                )
        except asyncpg.UniqueViolationError as e:
            raise duplicate_field_error(e)

        logger.info("user_registered", user_id=str(user_id), username=username)
        return _row_to_user(row)

    async def authenticate(self, login: str, password: str) -> User:
        """Return the active user matching a username (or email) and password.

        Raises:
            InvalidCredentialsError: If no active user matches
        """
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS}, password_hash
                FROM users
                WHERE username = $1 OR email = LOWER($1)
                LIMIT 1
                """,
                login,
            )

        if row is None or not self.verify_password(password, row["password_hash"]):
            logger.warning("login_failed", login=login)
            raise InvalidCredentialsError("Invalid credentials")

        if not row["is_active"]:
            logger.warning("login_inactive_user", user_id=str(row["id"]))
            raise InvalidCredentialsError("Invalid credentials")

        return _row_to_user(row)

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        if row is None:
            return None
        return _row_to_user(row)

    async def touch_last_active(self, user_id: UUID) -> datetime:
        """Record that the user just made an authenticated request."""
        now = datetime.now(timezone.utc)
        async with self.db.acquire() as conn:
            await conn.execute(
                "UPDATE users SET last_active = $1 WHERE id = $2",
                now,
                user_id,
            )
        return now

    async def update_profile(
        self, user_id: UUID, changes: dict[str, Any]
    ) -> Optional[User]:
        """Update first/last name, email and preferences.

        Args:
            user_id: User to update
            changes: Subset of first_name, last_name, email, preferences

        Returns:
            Updated User, or None if the user does not exist

        Raises:
            DuplicateFieldError: If the new email is taken
        """
        allowed = ("first_name", "last_name", "email", "preferences")
        set_clauses = []
        params: list = []
        param_idx = 1

        for column in allowed:
            if column in changes:
                set_clauses.append(f"{column} = ${param_idx}")
                params.append(changes[column])
                param_idx += 1

        if not set_clauses:
            return await self.get_by_id(user_id)

        set_clauses.append(f"updated_at = ${param_idx}")
        params.append(datetime.now(timezone.utc))
        param_idx += 1
        params.append(user_id)

        query = f"""
            UPDATE users
            SET {', '.join(set_clauses)}
            WHERE id = ${param_idx}
            RETURNING {USER_COLUMNS}
        """

        try:
            async with self.db.acquire() as conn:
                row = await conn.fetchrow(query, *params)
        except asyncpg.UniqueViolationError as e:
            raise duplicate_field_error(e)

        if row is None:
            return None

        logger.info(
            "user_profile_updated",
            user_id=str(user_id),
            fields_updated=[c for c in allowed if c in changes],
        )
        return _row_to_user(row)

    async def change_password(
        self, user_id: UUID, current_password: str, new_password: str
    ) -> None:
        """Replace the password after checking the current one.

        Raises:
            InvalidCredentialsError: If ``current_password`` is wrong
        """
        async with self.db.acquire() as conn:
            password_hash = await conn.fetchval(
                "SELECT password_hash FROM users WHERE id = $1",
                user_id,
            )

            if password_hash is None or not self.verify_password(
                current_password, password_hash
            ):
                raise InvalidCredentialsError("Current password is incorrect")

            await conn.execute(
                "UPDATE users SET password_hash = $1, updated_at = $2 WHERE id = $3",
                self.hash_password(new_password),
                datetime.now(timezone.utc),
                user_id,
            )

        logger.info("user_password_changed", user_id=str(user_id))

    # ------------------------------------------------------------------
    # Active refresh tokens
    # ------------------------------------------------------------------

    async def add_refresh_token(self, user_id: UUID, token: str) -> None:
        """Add a token to the user's active set, tagged with its issue time."""
        async with self.db.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO refresh_tokens (token_hash, user_id, created_at)
                VALUES ($1, $2, $3)
                ON CONFLICT (token_hash) DO NOTHING
                """,
                _hash_token(token),
                user_id,
                datetime.now(timezone.utc),
            )

    async def has_refresh_token(self, user_id: UUID, token: str) -> bool:
        async with self.db.acquire() as conn:
            found = await conn.fetchval(
                """
                SELECT EXISTS (
                    SELECT 1 FROM refresh_tokens
                    WHERE token_hash = $1 AND user_id = $2
                )
                """,
                _hash_token(token),
                user_id,
            )
        return bool(found)

    async def remove_refresh_token(self, user_id: UUID, token: str) -> bool:
        """Drop one token from the user's active set.

        Returns:
            True if the token was in the set
        """
        async with self.db.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM refresh_tokens WHERE token_hash = $1 AND user_id = $2",
                _hash_token(token),
                user_id,
            )

        removed = affected_rows(result) > 0
        logger.info("refresh_token_removed", user_id=str(user_id), removed=removed)
        return removed

    async def remove_all_refresh_tokens(self, user_id: UUID) -> int:
        """Empty the user's active set. Returns the number of tokens dropped."""
        async with self.db.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM refresh_tokens WHERE user_id = $1",
                user_id,
            )

        count = affected_rows(result)
        logger.info("all_refresh_tokens_removed", user_id=str(user_id), count=count)
        return count
