"""FastAPI dependencies for authentication and authorization."""

from typing import Any, Optional, Type
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from taskmaster.database import Database
from taskmaster.exceptions import TokenError, TokenExpiredError
from taskmaster.models.auth import RefreshRequest
from taskmaster.models.user import User
from taskmaster.services.token_service import TokenService
from taskmaster.services.user_service import UserService

logger = structlog.get_logger(__name__)

# auto_error=False: a missing header is answered with our own 401 body
bearer_scheme = HTTPBearer(auto_error=False)

BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def get_database(request: Request) -> Database:
    """Return the database opened by the application lifespan."""
    return request.app.state.db


def _unauthorized(detail: Any) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers=BEARER_CHALLENGE,
    )


async def _resolve_user(token: str, db: Database) -> User:
    """Verify an access token and load its active user.

    Raises:
        TokenError: If the token is expired or invalid
        HTTPException 401: If the user is missing or deactivated
    """
    user_id = TokenService().verify_access_token(token)

    user_service = UserService(db)
    user = await user_service.get_by_id(user_id)
    if user is None or not user.is_active:
        raise _unauthorized("Invalid token. User not found.")

    user.last_active = await user_service.touch_last_active(user.id)
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_database),
) -> User:
    """Require a valid bearer token and return its user.

    The user is also attached to ``request.state.user``.

    Raises:
        HTTPException 401: If the token is absent, expired, invalid,
            or its user is missing or deactivated
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Access denied. No token provided.")

    try:
        user = await _resolve_user(credentials.credentials, db)
    except TokenExpiredError:
        raise _unauthorized({"error": "Token expired", "code": "TOKEN_EXPIRED"})
    except TokenError:
        raise _unauthorized("Invalid token")

    request.state.user = user
    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_database),
) -> Optional[User]:
    """Like get_current_user, but a missing or bad token yields None."""
    if credentials is None or not credentials.credentials:
        return None

    try:
        user = await _resolve_user(credentials.credentials, db)
    except (TokenError, HTTPException):
        return None

    request.state.user = user
    return user


class RequireOwnership:
    """Dependency that loads a resource and checks the caller owns it.

    Args:
        repository_cls: Repository class built from a Database and exposing
            ``get_by_id(id)``; the loaded resource must have ``user_id``
        id_param: Name of the path parameter holding the resource id

    The resource is attached to ``request.state.resource`` and returned.
    """

    def __init__(self, repository_cls: Type, id_param: str = "id"):
        self.repository_cls = repository_cls
        self.id_param = id_param

    async def __call__(
        self,
        request: Request,
        current_user: User = Depends(get_current_user),
        db: Database = Depends(get_database),
    ):
        raw_id = request.path_params.get(self.id_param)
        try:
            resource_id = UUID(str(raw_id))
        except ValueError:
            raise HTTPException(status_code=404, detail="Resource not found")

        resource = await self.repository_cls(db).get_by_id(resource_id)

        if resource is None:
            raise HTTPException(status_code=404, detail="Resource not found")

        if resource.user_id != current_user.id:
            logger.warning(
                "resource_access_denied",
                resource_id=str(resource_id),
                user_id=str(current_user.id),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. You can only access your own resources.",
            )

        request.state.resource = resource
        return resource


async def validate_refresh_token(
    body: Optional[RefreshRequest] = None,
    db: Database = Depends(get_database),
) -> tuple[User, str]:
    """Check a refresh token from the request body.

    The token must be validly signed, unexpired, tagged ``refresh``, belong
    to an active user and still be in that user's active-token set.

    Returns:
        Tuple of (user, refresh_token)

    Raises:
        HTTPException 401: On any of the failures above
    """
    token = body.refresh_token if body else None
    if not token:
        raise _unauthorized("Refresh token is required")

    try:
        user_id = TokenService().verify_refresh_token(token)
    except TokenExpiredError:
        raise _unauthorized(
            {"error": "Refresh token expired", "code": "REFRESH_TOKEN_EXPIRED"}
        )
    except TokenError:
        raise _unauthorized("Invalid refresh token")

    user_service = UserService(db)
    user = await user_service.get_by_id(user_id)
    if user is None or not user.is_active:
        raise _unauthorized("Invalid refresh token. User not found.")

    if not await user_service.has_refresh_token(user.id, token):
        logger.warning("refresh_token_not_active", user_id=str(user.id))
        raise _unauthorized("Invalid refresh token")

    return user, token
