"""Authentication service layer.

Business logic for:
- User registration and login
- Access token issuing
- Profile reads and updates
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.auth.models import User, normalize_email
from src.auth.schemas import (
    ProfileResponse,
    RegisterRequest,
    TokenResponse,
    UpdateProfileRequest,
    UserResponse,
)
from src.auth.security import create_access_token, hash_password, verify_password
from src.config.settings import get_settings
from src.core.exceptions import (
    AuthenticationError,
    BusinessRuleError,
    NotFoundError,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

EnrolledCoursesReader = Callable[[UUID], Awaitable[list[UUID]]]


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message, "invalid_credentials")


class InvalidTokenError(AuthenticationError):
    """Invalid or expired token."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message, "invalid_token")


class UserExistsError(BusinessRuleError):
    """Email already registered."""

    def __init__(self, message: str = "User already exists"):
        super().__init__(message, "user_exists")


class UserNotFoundError(NotFoundError):
    def __init__(self, message: str = "User not found"):
        super().__init__(message, "user_not_found")


# ==============================================================================
# Auth Service
# ==============================================================================


class AuthService:
    """Authentication service for user management and token operations."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session.

        Args:
            session: Cassandra session with aexecute()
            keyspace: Keyspace name for queries
        """
        self.session = session
        self.keyspace = keyspace
        self._enrolled_courses_reader: EnrolledCoursesReader | None = None
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for better performance."""
        self._get_user_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE id = ?"
        )
        self._get_user_id_by_email = self.session.prepare(
            f"SELECT user_id FROM {self.keyspace}.users_by_email WHERE email = ?"
        )
        self._claim_email = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.users_by_email (email, user_id)
            VALUES (?, ?)
            IF NOT EXISTS
        """)
        self._release_email = self.session.prepare(
            f"DELETE FROM {self.keyspace}.users_by_email WHERE email = ?"
        )
        self._insert_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.users
            (id, email, name, password_hash, role, avatar_url, bio,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._update_profile = self.session.prepare(f"""
            UPDATE {self.keyspace}.users
            SET name = ?, bio = ?, avatar_url = ?, updated_at = ?
            WHERE id = ?
        """)
        self._update_password = self.session.prepare(f"""
            UPDATE {self.keyspace}.users
            SET password_hash = ?, updated_at = ?
            WHERE id = ?
        """)

    def set_enrolled_courses_reader(self, reader: EnrolledCoursesReader) -> None:
        """Plug in the enrollment index used to build profile responses."""
        self._enrolled_courses_reader = reader

    # ==========================================================================
    # User Operations
    # ==========================================================================

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Find user by ID."""
        result = await self.session.aexecute(self._get_user_by_id, [user_id])
        row = result.one()
        return User.from_row(row) if row else None

    async def get_user_by_email(self, email: str) -> User | None:
        """Find user by email address through the email lookup table."""
        result = await self.session.aexecute(
            self._get_user_id_by_email, [normalize_email(email)]
        )
        row = result.one()
        if not row:
            return None
        return await self.get_user_by_id(row.user_id)

    async def get_users_by_ids(self, user_ids: set[UUID]) -> dict[UUID, User]:
        """Resolve several users at once (missing ids are skipped)."""
        users: dict[UUID, User] = {}
        for user_id in user_ids:
            user = await self.get_user_by_id(user_id)
            if user:
                users[user_id] = user
        return users

    async def register_user(self, data: RegisterRequest) -> User:
        """Register a new user.

        The email is claimed with a lightweight transaction before the user
        row is written, so two concurrent registrations cannot both succeed.

        Raises:
            UserExistsError: If the email is already registered
        """
        user = User(
            email=data.email,
            name=data.name,
            password_hash=hash_password(data.password),
            role=data.role.value,
        )

        claim = await self.session.aexecute(self._claim_email, [user.email, user.id])
        if not claim.was_applied:
            raise UserExistsError

        try:
            await self.session.aexecute(
                self._insert_user,
                [
                    user.id,
                    user.email,
                    user.name,
                    user.password_hash,
                    user.role,
                    user.avatar_url,
                    user.bio,
                    user.created_at,
                    user.updated_at,
                ],
            )
        except Exception:
            await self.session.aexecute(self._release_email, [user.email])
            raise

        logger.info("user_registered", user_id=str(user.id), role=user.role)
        return user

    async def authenticate_user(self, email: str, password: str) -> User:
        """Authenticate user with email and password.

        Raises:
            InvalidCredentialsError: If email or password is wrong
        """
        user = await self.get_user_by_email(email)
        if not user:
            raise InvalidCredentialsError

        is_valid, new_hash = verify_password(password, user.password_hash)
        if not is_valid:
            logger.info("login_failed", user_id=str(user.id))
            raise InvalidCredentialsError

        # Argon2 parameters changed since this hash was stored
        if new_hash:
            await self.session.aexecute(
                self._update_password, [new_hash, datetime.now(UTC), user.id]
            )
            user.password_hash = new_hash

        return user

    async def update_user_profile(
        self, user_id: UUID, data: UpdateProfileRequest
    ) -> User:
        """Update name, bio and avatar; omitted fields are left as they are.

        Raises:
            UserNotFoundError: If user doesn't exist
        """
        user = await self.get_user_by_id(user_id)
        if not user:
            raise UserNotFoundError

        if data.name is not None:
            user.name = data.name
        if data.bio is not None:
            user.bio = data.bio
        if "avatar_url" in data.model_fields_set:
            user.avatar_url = data.avatar_url

        user.updated_at = datetime.now(UTC)
        await self.session.aexecute(
            self._update_profile,
            [user.name, user.bio, user.avatar_url, user.updated_at, user.id],
        )
        return user

    async def get_profile(self, user_id: UUID) -> ProfileResponse:
        """Own profile with enrolled course ids.

        Raises:
            UserNotFoundError: If user doesn't exist
        """
        user = await self.get_user_by_id(user_id)
        if not user:
            raise UserNotFoundError

        enrolled: list[UUID] = []
        if self._enrolled_courses_reader is not None:
            enrolled = await self._enrolled_courses_reader(user_id)

        return ProfileResponse(
            **UserResponse.from_user(user).model_dump(),
            enrolled_courses=enrolled,
        )

    # ==========================================================================
    # Tokens
    # ==========================================================================

    def create_token_response(self, user: User) -> TokenResponse:
        """Issue an access token for the user."""
        settings = get_settings()
        token = create_access_token(
            {"sub": str(user.id), "email": user.email, "role": user.role}
        )
        return TokenResponse(
            access_token=token,
            expires_in=settings.auth_access_token_expire_minutes * 60,
            user=UserResponse.from_user(user),
        )
