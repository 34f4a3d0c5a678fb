"""API package exports."""

from taskmaster.api.auth import router as auth_router
from taskmaster.api.middleware import CorrelationIdMiddleware
from taskmaster.api.routes import fallback_router, router
from taskmaster.api.todos import router as todos_router

__all__ = [
    "CorrelationIdMiddleware",
    "auth_router",
    "fallback_router",
    "router",
    "todos_router",
]
