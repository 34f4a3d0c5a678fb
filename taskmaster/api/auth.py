"""Authentication API endpoints."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from taskmaster.api.dependencies import (
    get_current_user,
    get_database,
    validate_refresh_token,
)
from taskmaster.database import Database
from taskmaster.exceptions import DuplicateFieldError, InvalidCredentialsError
from taskmaster.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LogoutRequest,
    RegisterRequest,
    UpdateProfileRequest,
    UserProfile,
    UserSummary,
)
from taskmaster.models.user import User
from taskmaster.services.token_service import TokenService
from taskmaster.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

PROFILE_FIELDS = ["firstName", "lastName", "email", "preferences"]


def _user_summary(user: User) -> dict:
    """Convert a User model to the public summary shape."""
    return UserSummary(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        preferences=user.preferences,
    ).model_dump(mode="json", by_alias=True)


def _user_profile(user: User) -> dict:
    return UserProfile(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        preferences=user.preferences,
        full_name=user.full_name,
        last_active=user.last_active,
        created_at=user.created_at,
    ).model_dump(mode="json", by_alias=True)


async def _issue_tokens(user: User, user_service: UserService) -> dict:
    """Create a token pair and add the refresh token to the user's active set."""
    access_token, refresh_token = TokenService().issue_token_pair(user.id)
    await user_service.add_refresh_token(user.id, refresh_token)
    return {"accessToken": access_token, "refreshToken": refresh_token}


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    db: Database = Depends(get_database),
) -> dict:
    """Create an account and return it with a fresh token pair.

    Raises:
        HTTPException 400: If the username or email is already registered
    """
    user_service = UserService(db)

    conflict = await user_service.find_conflict(request.username, request.email)
    if conflict:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"User with this {conflict} already exists",
        )

    try:
        user = await user_service.create_user(
            username=request.username,
            email=request.email,
            first_name=request.first_name,
            last_name=request.last_name,
            password=request.password,
        )
    except DuplicateFieldError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"User with this {e.field} already exists",
        )

    tokens = await _issue_tokens(user, user_service)

    return {
        "message": "User registered successfully",
        "user": _user_summary(user),
        **tokens,
    }


@router.post("/login")
async def login(
    request: LoginRequest,
    db: Database = Depends(get_database),
) -> dict:
    """Login with username (or email) and password.

    Raises:
        HTTPException 401: If credentials are invalid or the user is disabled
    """
    user_service = UserService(db)

    try:
        user = await user_service.authenticate(request.username, request.password)
    except InvalidCredentialsError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    tokens = await _issue_tokens(user, user_service)
    user.last_active = await user_service.touch_last_active(user.id)

    logger.info("user_logged_in", user_id=str(user.id))
    return {
        "message": "Login successful",
        "user": _user_summary(user),
        **tokens,
    }


@router.post("/refresh")
async def refresh(
    validated: tuple[User, str] = Depends(validate_refresh_token),
    db: Database = Depends(get_database),
) -> dict:
    """Rotate a refresh token into a new token pair.

    The new token joins the active set, then the old one leaves it. These are
    two separate writes; a crash in between leaves the old token valid.
    """
    user, old_refresh_token = validated
    user_service = UserService(db)

    access_token, refresh_token = TokenService().issue_token_pair(user.id)
    await user_service.add_refresh_token(user.id, refresh_token)
    await user_service.remove_refresh_token(user.id, old_refresh_token)

    logger.info("refresh_token_rotated", user_id=str(user.id))
    return {
        "message": "Token refreshed successfully",
        "accessToken": access_token,
        "refreshToken": refresh_token,
    }


@router.post("/logout")
async def logout(
    request: Optional[LogoutRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> dict:
    """Revoke one refresh token (if given) for the current user."""
    if request and request.refresh_token:
        await UserService(db).remove_refresh_token(current_user.id, request.refresh_token)

    logger.info("user_logged_out", user_id=str(current_user.id))
    return {"message": "Logout successful"}


@router.post("/logout-all")
async def logout_all(
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> dict:
    """Revoke every refresh token of the current user."""
    await UserService(db).remove_all_refresh_tokens(current_user.id)
    return {"message": "Logged out from all devices successfully"}


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)) -> dict:
    """Get the current user's profile."""
    return {"user": _user_profile(current_user)}


@router.put("/me")
async def update_me(
    request: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> dict:
    """Update first/last name, email and preferences.

    Raises:
        HTTPException 400: If no fields are given or the email is taken
    """
    changes = request.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "No valid fields to update",
                "allowedFields": PROFILE_FIELDS,
            },
        )

    try:
        user = await UserService(db).update_profile(current_user.id, changes)
    except DuplicateFieldError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already exists",
        )

    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    return {
        "message": "Profile updated successfully",
        "user": _user_profile(user),
    }


@router.put("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> dict:
    """Set a new password and revoke all refresh tokens.

    Raises:
        HTTPException 400: If the current password is wrong
    """
    user_service = UserService(db)

    try:
        await user_service.change_password(
            current_user.id, request.current_password, request.new_password
        )
    except InvalidCredentialsError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    await user_service.remove_all_refresh_tokens(current_user.id)

    return {"message": "Password changed successfully. Please login again."}
