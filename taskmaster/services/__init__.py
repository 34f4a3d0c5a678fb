"""Services package exports."""

from taskmaster.services.logging_service import configure_logging, get_logger
from taskmaster.services.todo_repository import TodoRepository
from taskmaster.services.token_service import TokenService
from taskmaster.services.user_service import UserService

__all__ = [
    "TodoRepository",
    "TokenService",
    "UserService",
    "configure_logging",
    "get_logger",
]
