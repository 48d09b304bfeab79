"""Authentication API endpoints.

Provides routes for:
- User registration and login
- Profile read and update
"""

from collections.abc import Callable
from typing import Annotated

from fastapi import APIRouter, Depends, status

from src.auth.dependencies import CurrentUser
from src.auth.schemas import (
    LoginRequest,
    ProfileResponse,
    RegisterRequest,
    TokenResponse,
    UpdateProfileRequest,
    UserResponse,
)
from src.auth.service import AuthService


router = APIRouter(prefix="/v1/auth", tags=["auth"])


# ==============================================================================
# Dependency for AuthService
# ==============================================================================

# Module-level reference to be overridden by main.py
_auth_service_getter: Callable[[], AuthService] | None = None


def set_auth_service_getter(getter: Callable[[], AuthService]) -> None:
    """Set the auth service getter function.

    Called by main.py during app initialization.
    """
    global _auth_service_getter  # noqa: PLW0603 - Required for DI pattern
    _auth_service_getter = getter


def get_auth_service() -> AuthService:
    """Get AuthService instance via the getter set by main.py."""
    if _auth_service_getter is None:
        raise RuntimeError(
            "AuthService not configured - call set_auth_service_getter first"
        )
    return _auth_service_getter()


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


# ==============================================================================
# Public Endpoints (No Auth Required)
# ==============================================================================


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register new user",
    responses={
        409: {"description": "Email already registered"},
        422: {"description": "Validation error"},
    },
)
async def register(
    data: RegisterRequest,
    auth_service: AuthServiceDep,
) -> TokenResponse:
    """Create a student or instructor account and return an access token."""
    user = await auth_service.register_user(data)
    return auth_service.create_token_response(user)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="User login",
    responses={401: {"description": "Invalid credentials"}},
)
async def login(
    data: LoginRequest,
    auth_service: AuthServiceDep,
) -> TokenResponse:
    user = await auth_service.authenticate_user(data.email, data.password)
    return auth_service.create_token_response(user)


# ==============================================================================
# Authenticated Endpoints
# ==============================================================================


@router.get(
    "/me",
    response_model=ProfileResponse,
    summary="Get current user profile",
)
async def get_me(
    user: CurrentUser,
    auth_service: AuthServiceDep,
) -> ProfileResponse:
    """Profile of the caller, including enrolled course ids."""
    return await auth_service.get_profile(user.id)


@router.patch(
    "/me",
    response_model=UserResponse,
    summary="Update current user profile",
)
async def update_me(
    data: UpdateProfileRequest,
    user: CurrentUser,
    auth_service: AuthServiceDep,
) -> UserResponse:
    updated = await auth_service.update_user_profile(user.id, data)
    return UserResponse.from_user(updated)
