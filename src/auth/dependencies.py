"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current caller extraction from the JWT (authenticate)
- Role-based access control (require_role)
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from jose import JWTError
from pydantic import BaseModel

from src.auth.permissions import UserRole
from src.auth.security import decode_access_token
from src.auth.service import InvalidTokenError
from src.core.context import set_user
from src.core.exceptions import AuthenticationError, AuthorizationError


class Caller(BaseModel):
    """Identity carried by an access token."""

    id: UUID
    email: str
    role: UserRole


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


def authenticate(token: str) -> Caller:
    """Resolve a token into the caller's id and role.

    Raises:
        InvalidTokenError: If the token is invalid, expired or malformed
    """
    try:
        payload = decode_access_token(token)
        caller = Caller(id=payload["sub"], email=payload["email"], role=payload["role"])
    except (JWTError, KeyError, ValueError) as e:
        raise InvalidTokenError from e

    set_user(caller.id, caller.role.value)
    return caller


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> Caller:
    """Main authentication dependency.

    Raises:
        AuthenticationError: If token is missing, invalid, or expired
    """
    if not token:
        raise AuthenticationError("Access token not provided", "not_authenticated")
    return authenticate(token)


def require_role(*allowed_roles: UserRole):
    """Create dependency requiring one of the given roles (exact match).

    Example:
        @router.post("")
        async def create_course(
            user: Annotated[Caller, Depends(require_role(UserRole.INSTRUCTOR, UserRole.ADMIN))]
        ):
            ...
    """

    async def role_checker(
        user: Annotated[Caller, Depends(get_current_user)],
    ) -> Caller:
        if user.role not in allowed_roles:
            raise AuthorizationError("Insufficient permissions", "insufficient_role")
        return user

    return role_checker


# ==============================================================================
# Type Aliases for Cleaner Code
# ==============================================================================

CurrentUser = Annotated[Caller, Depends(get_current_user)]

# Instructor-or-admin (authoring endpoints)
InstructorUser = Annotated[
    Caller, Depends(require_role(UserRole.INSTRUCTOR, UserRole.ADMIN))
]
