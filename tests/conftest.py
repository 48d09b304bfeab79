"""Shared fixtures.

``FakeCassandraSession`` executes the small CQL subset the services prepare
(single-table SELECT / INSERT / UPDATE / DELETE with ``?`` markers, equality
WHERE clauses, IF NOT EXISTS and IF col = ? conditions) against in-memory
tables, so service and endpoint tests run the real statement flow.
"""

import copy
import re
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any
from uuid import UUID, uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.ai.service import TextGenerationService
from src.auth.permissions import UserRole
from src.auth.security import create_access_token
from src.auth.service import AuthService
from src.config.settings import Settings
from src.courses.schemas import CreateCourseRequest, CreateLessonRequest
from src.courses.service import CourseService
from src.progress.service import EnrollmentService, ProgressService


KEYSPACE = "edumaster_test"

PRIMARY_KEYS: dict[str, tuple[str, ...]] = {
    "users": ("id",),
    "users_by_email": ("email",),
    "courses": ("id",),
    "course_lessons": ("course_id", "position"),
    "courses_by_published": ("published", "created_at", "course_id"),
    "courses_by_instructor": ("instructor_id", "created_at", "course_id"),
    "progress": ("user_id", "course_id"),
    "progress_by_course": ("course_id", "user_id"),
    "progress_by_user": ("user_id", "enrolled_at", "course_id"),
    "quiz_scores": ("user_id", "course_id", "score_id"),
}

# Clustering order applied to SELECT results: (column, descending)
CLUSTERING: dict[str, tuple[str, bool]] = {
    "course_lessons": ("position", False),
    "courses_by_published": ("created_at", True),
    "courses_by_instructor": ("created_at", True),
    "progress_by_user": ("enrolled_at", False),
}

_SELECT = re.compile(
    r"^SELECT (?P<cols>.+?) FROM (?:\w+\.)?(?P<table>\w+)(?: WHERE (?P<where>.+))?$",
    re.IGNORECASE,
)
_INSERT = re.compile(
    r"^INSERT INTO (?:\w+\.)?(?P<table>\w+) ?\((?P<cols>[^)]*)\) VALUES ?\([^)]*\)"
    r"(?P<if_not_exists> IF NOT EXISTS)?$",
    re.IGNORECASE,
)
_UPDATE = re.compile(
    r"^UPDATE (?:\w+\.)?(?P<table>\w+) SET (?P<sets>.+?) WHERE (?P<where>.+?)"
    r"(?: IF (?P<condition>.+))?$",
    re.IGNORECASE,
)
_DELETE = re.compile(
    r"^DELETE FROM (?:\w+\.)?(?P<table>\w+) WHERE (?P<where>.+)$",
    re.IGNORECASE,
)
_COUNT = re.compile(r"^COUNT\(\*\) AS (?P<alias>\w+)$", re.IGNORECASE)


def _columns(clause: str, separator: str) -> list[str]:
    return [
        part.split("=")[0].strip()
        for part in re.split(separator, clause, flags=re.IGNORECASE)
    ]


class FakeStatement:
    def __init__(self, cql: str):
        self.cql = " ".join(cql.split()).replace("( ", "(").replace(" )", ")")


class FakeResult:
    """Iterable result with ``one()`` and ``was_applied``."""

    def __init__(self, rows: list[dict[str, Any]] | None = None, applied: bool = True):
        self._rows = [SimpleNamespace(**row) for row in rows or []]
        self.was_applied = applied

    def __iter__(self):
        return iter(self._rows)

    def one(self):
        return self._rows[0] if self._rows else None


class FakeCassandraSession:
    """In-memory stand-in for a cassandra-asyncio-driver session."""

    def __init__(self):
        self.tables: dict[str, dict[tuple, dict[str, Any]]] = {
            name: {} for name in PRIMARY_KEYS
        }
        self.executed: list[str] = []
        self.is_shutdown = False
        # Called with (cql, params) before a statement runs; may raise or mutate
        self.before_execute: list[Callable[[str, list[Any]], None]] = []

    def prepare(self, cql: str) -> FakeStatement:
        return FakeStatement(cql)

    def set_keyspace(self, keyspace: str) -> None:
        pass

    def shutdown(self) -> None:
        self.is_shutdown = True

    async def aexecute(self, statement: Any, params: list[Any] | None = None) -> FakeResult:
        cql = statement.cql if isinstance(statement, FakeStatement) else str(statement)
        params = list(params or [])
        for hook in list(self.before_execute):
            hook(cql, params)
        self.executed.append(cql)
        params = copy.deepcopy(params)

        if match := _SELECT.match(cql):
            return self._select(match, params)
        if match := _INSERT.match(cql):
            return self._insert(match, params)
        if match := _UPDATE.match(cql):
            return self._update(match, params)
        if match := _DELETE.match(cql):
            return self._delete(match, params)
        # DDL and anything else
        return FakeResult()

    # ------------------------------------------------------------------
    # Helpers for tests
    # ------------------------------------------------------------------

    def rows(self, table: str) -> list[dict[str, Any]]:
        return list(self.tables[table].values())

    def fail_next(self, fragment: str, times: int = 1, error: Exception | None = None) -> None:
        """Raise on the next ``times`` statements containing ``fragment``."""
        remaining = {"count": times}

        def hook(cql: str, params: list[Any]) -> None:
            if fragment in cql and remaining["count"] > 0:
                remaining["count"] -= 1
                raise error or RuntimeError(f"injected failure: {fragment}")

        self.before_execute.append(hook)

    # ------------------------------------------------------------------
    # Statement execution
    # ------------------------------------------------------------------

    def _matching(self, table: str, where: str | None, params: list[Any]):
        if not where:
            return list(self.tables[table].items())
        criteria = dict(zip(_columns(where, r" AND "), params, strict=True))
        return [
            (key, row)
            for key, row in self.tables[table].items()
            if all(row.get(col) == value for col, value in criteria.items())
        ]

    def _select(self, match: re.Match, params: list[Any]) -> FakeResult:
        table = match["table"]
        rows = [row for _, row in self._matching(table, match["where"], params)]

        if table in CLUSTERING:
            column, descending = CLUSTERING[table]
            rows.sort(key=lambda r: r[column], reverse=descending)

        cols = match["cols"].strip()
        if count := _COUNT.match(cols):
            return FakeResult([{count["alias"]: len(rows)}])
        if cols == "*":
            return FakeResult(copy.deepcopy(rows))
        names = [c.strip() for c in cols.split(",")]
        return FakeResult([{name: copy.deepcopy(row.get(name)) for name in names} for row in rows])

    def _insert(self, match: re.Match, params: list[Any]) -> FakeResult:
        table = match["table"]
        cols = [c.strip() for c in match["cols"].split(",")]
        values = dict(zip(cols, params, strict=True))
        key = tuple(values[k] for k in PRIMARY_KEYS[table])

        existing = self.tables[table].get(key)
        if match["if_not_exists"] and existing is not None:
            return FakeResult([existing], applied=False)

        if existing is not None:
            existing.update(values)
        else:
            self.tables[table][key] = values
        return FakeResult()

    def _update(self, match: re.Match, params: list[Any]) -> FakeResult:
        table = match["table"]
        set_cols = _columns(match["sets"], r",")
        where_cols = _columns(match["where"], r" AND ")
        condition_cols = _columns(match["condition"], r" AND ") if match["condition"] else []

        set_values = params[: len(set_cols)]
        where_values = params[len(set_cols) : len(set_cols) + len(where_cols)]
        condition_values = params[len(set_cols) + len(where_cols) :]

        key_values = dict(zip(where_cols, where_values, strict=True))
        key = tuple(key_values[k] for k in PRIMARY_KEYS[table])
        row = self.tables[table].get(key)

        if condition_cols:
            expected = dict(zip(condition_cols, condition_values, strict=True))
            if row is None or any(row.get(c) != v for c, v in expected.items()):
                return FakeResult([row] if row else [], applied=False)

        if row is None:
            row = dict(key_values)
            self.tables[table][key] = row
        row.update(zip(set_cols, set_values, strict=True))
        return FakeResult()

    def _delete(self, match: re.Match, params: list[Any]) -> FakeResult:
        table = match["table"]
        for key, _ in self._matching(table, match["where"], params):
            del self.tables[table][key]
        return FakeResult()


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def fake_session() -> FakeCassandraSession:
    return FakeCassandraSession()


@pytest.fixture
def auth_service(fake_session: FakeCassandraSession) -> AuthService:
    return AuthService(session=fake_session, keyspace=KEYSPACE)


@pytest.fixture
def course_service(fake_session: FakeCassandraSession) -> CourseService:
    return CourseService(session=fake_session, keyspace=KEYSPACE)


@pytest.fixture
def progress_service(
    fake_session: FakeCassandraSession,
    course_service: CourseService,
    auth_service: AuthService,
) -> ProgressService:
    service = ProgressService(
        session=fake_session,
        keyspace=KEYSPACE,
        course_service=course_service,
        auth_service=auth_service,
    )
    course_service.register_delete_cascade(service.delete_course_progress)
    auth_service.set_enrolled_courses_reader(service.list_enrolled_course_ids)
    return service


@pytest.fixture
def enrollment_service(
    progress_service: ProgressService, course_service: CourseService
) -> EnrollmentService:
    return EnrollmentService(
        progress_service=progress_service, course_service=course_service
    )


@pytest.fixture
def create_course(course_service: CourseService) -> Callable[..., Any]:
    """Factory: create a course with ``lessons`` appended lessons."""

    async def _create(
        instructor_id: UUID | None = None,
        lessons: int = 0,
        **overrides: Any,
    ):
        instructor_id = instructor_id or uuid4()
        data = {
            "title": "Python Basics",
            "description": "Learn Python from scratch",
            "category": "Programming",
        }
        data.update(overrides)
        course = await course_service.create_course(
            CreateCourseRequest(**data), instructor_id
        )
        for index in range(lessons):
            await course_service.add_lesson(
                course.id,
                instructor_id,
                UserRole.INSTRUCTOR,
                CreateLessonRequest(title=f"Lesson {index + 1}", content="Content"),
            )
        return course

    return _create


@pytest.fixture
def app(fake_session: FakeCassandraSession) -> FastAPI:
    """Application wired to the in-memory session (lifespan not run)."""
    from src.main import create_app, init_services

    application = create_app()
    init_services(application, fake_session, KEYSPACE)
    application.state.text_generation_service = TextGenerationService(
        Settings(ai_api_key=None)
    )
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Factory for access tokens carrying an arbitrary identity."""

    def _make(
        user_id: UUID | None = None,
        role: UserRole = UserRole.STUDENT,
        email: str | None = None,
    ) -> str:
        user_id = user_id or uuid4()
        return create_access_token(
            {
                "sub": str(user_id),
                "email": email or f"{role.value}_{user_id.hex[:8]}@test.com",
                "role": role.value,
            }
        )

    return _make


@pytest.fixture
def auth_headers(make_token: Callable[..., str]) -> Callable[..., dict[str, str]]:
    def _headers(user_id: UUID | None = None, role: UserRole = UserRole.STUDENT) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _headers
