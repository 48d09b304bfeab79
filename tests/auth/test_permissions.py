"""Tests for auth permissions."""

from uuid import uuid4

import pytest

from src.auth.permissions import (
    ROLE_HIERARCHY,
    SELF_REGISTERABLE_ROLES,
    UserRole,
    can_manage_course,
    get_role_level,
    has_permission,
    is_admin,
    is_at_least_instructor,
)


class TestUserRole:
    """Tests for UserRole enum."""

    def test_role_values(self) -> None:
        assert UserRole.STUDENT.value == "student"
        assert UserRole.INSTRUCTOR.value == "instructor"
        assert UserRole.ADMIN.value == "admin"

    def test_all_roles_have_levels(self) -> None:
        for role in UserRole:
            assert role in ROLE_HIERARCHY

    def test_admin_cannot_self_register(self) -> None:
        assert UserRole.ADMIN not in SELF_REGISTERABLE_ROLES
        assert UserRole.STUDENT in SELF_REGISTERABLE_ROLES
        assert UserRole.INSTRUCTOR in SELF_REGISTERABLE_ROLES


class TestGetRoleLevel:
    """Tests for get_role_level function."""

    @pytest.mark.parametrize(
        "role,expected_level",
        [
            (UserRole.STUDENT, 0),
            ("instructor", 1),
            ("admin", 2),
            ("superuser", 0),
        ],
    )
    def test_levels(self, role: UserRole | str, expected_level: int) -> None:
        assert get_role_level(role) == expected_level


class TestHasPermission:
    """Tests for hierarchical permission checks."""

    def test_admin_has_all_permissions(self) -> None:
        for role in UserRole:
            assert has_permission(UserRole.ADMIN, role)

    def test_student_is_not_instructor(self) -> None:
        assert not has_permission("student", "instructor")
        assert not is_at_least_instructor(UserRole.STUDENT)

    def test_instructor_and_admin_can_author(self) -> None:
        assert is_at_least_instructor("instructor")
        assert is_at_least_instructor(UserRole.ADMIN)

    def test_is_admin_accepts_strings_and_enums(self) -> None:
        assert is_admin("admin")
        assert is_admin(UserRole.ADMIN)
        assert not is_admin("instructor")


class TestCanManageCourse:
    """Course ownership checks."""

    def test_owner_can_manage(self) -> None:
        owner = uuid4()
        assert can_manage_course(UserRole.INSTRUCTOR, owner, owner)

    def test_other_instructor_cannot_manage(self) -> None:
        assert not can_manage_course(UserRole.INSTRUCTOR, uuid4(), uuid4())

    def test_admin_can_manage_any_course(self) -> None:
        assert can_manage_course("admin", uuid4(), uuid4())
