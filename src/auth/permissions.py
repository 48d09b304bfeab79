"""Role-based access control for EduMaster.

Three hierarchical roles:
- ADMIN (level 2): manages every course
- INSTRUCTOR (level 1): authors and manages own courses
- STUDENT (level 0): browses, enrolls and tracks progress

Every role can enroll in courses; instructors only in courses they do not own.
"""

from enum import Enum
from uuid import UUID


class UserRole(str, Enum):
    """User roles, higher level = more permissions."""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.STUDENT: 0,
    UserRole.INSTRUCTOR: 1,
    UserRole.ADMIN: 2,
}

# Roles a visitor may pick when registering; admins are provisioned out of band
SELF_REGISTERABLE_ROLES = frozenset({UserRole.STUDENT, UserRole.INSTRUCTOR})


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role.

    Returns:
        Permission level (0-2), 0 for unknown roles
    """
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.INSTRUCTOR)
        True
        >>> has_permission("student", "instructor")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_admin(role: UserRole | str) -> bool:
    """Check if role is ADMIN."""
    return role == UserRole.ADMIN


def is_at_least_instructor(role: UserRole | str) -> bool:
    """Check if role is INSTRUCTOR or higher (ADMIN)."""
    return has_permission(role, UserRole.INSTRUCTOR)


def can_manage_course(
    role: UserRole | str, caller_id: UUID, instructor_id: UUID
) -> bool:
    """Owner of the course or an admin may edit, delete and add lessons."""
    return caller_id == instructor_id or is_admin(role)
