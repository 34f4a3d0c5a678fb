"""Service-level routes: root, health check and the unknown-route fallback."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from taskmaster import __version__
from taskmaster.api.dependencies import get_optional_user
from taskmaster.config import get_settings
from taskmaster.models.user import User

router = APIRouter()
fallback_router = APIRouter()

AVAILABLE_ENDPOINTS = [
    "GET /",
    "GET /api/health",
    "POST /api/auth/register",
    "POST /api/auth/login",
    "POST /api/auth/refresh",
    "POST /api/auth/logout",
    "POST /api/auth/logout-all",
    "GET /api/auth/me",
    "PUT /api/auth/me",
    "PUT /api/auth/change-password",
    "GET /api/todos",
    "GET /api/todos/stats",
    "GET /api/todos/search/:query",
    "GET /api/todos/:id",
    "POST /api/todos",
    "PUT /api/todos/:id",
    "PATCH /api/todos/:id/toggle",
    "PATCH /api/todos/bulk-update",
    "DELETE /api/todos/:id",
    "DELETE /api/todos",
]


@router.get("/")
async def root(current_user: Optional[User] = Depends(get_optional_user)) -> dict:
    """API index. Names the caller when a valid bearer token is sent."""
    body = {
        "message": "TaskMaster API Server",
        "version": __version__,
        "endpoints": {
            "auth": "/api/auth",
            "todos": "/api/todos",
            "health": "/api/health",
        },
    }
    if current_user is not None:
        body["authenticatedAs"] = current_user.username
    return body


@router.get("/api/health")
async def health_check(request: Request) -> dict:
    """Liveness probe with a database connectivity check."""
    settings = get_settings()
    db = getattr(request.app.state, "db", None)
    db_healthy = db is not None and await db.health_check()

    return {
        "status": "OK",
        "message": "TaskMaster API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "database": "healthy" if db_healthy else "unhealthy",
    }


@fallback_router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def endpoint_not_found(request: Request, path: str) -> JSONResponse:
    """Answer unknown routes with the list of real ones."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "Endpoint not found",
            "message": f"Cannot {request.method} {request.url.path}",
            "availableEndpoints": AVAILABLE_ENDPOINTS,
        },
    )
