"""Tests for CourseService against the in-memory session."""

from decimal import Decimal
from uuid import uuid4

import pytest

from src.auth.permissions import UserRole
from src.courses.schemas import (
    CreateCourseRequest,
    CreateLessonRequest,
    UpdateCourseRequest,
)
from src.courses.service import (
    CascadeDeleteError,
    CourseAccessDeniedError,
    CourseNotFoundError,
    CourseService,
    CourseValidationError,
    LessonOrderConflictError,
    LessonValidationError,
)


class TestCreateCourse:
    @pytest.mark.asyncio
    async def test_creates_course_and_lookup_rows(
        self, course_service: CourseService, fake_session
    ) -> None:
        instructor_id = uuid4()
        course = await course_service.create_course(
            CreateCourseRequest(
                title="Python Basics",
                description="Learn Python",
                category="Programming",
                price=Decimal("19.90"),
                tags=["python"],
            ),
            instructor_id,
        )

        assert course.instructor_id == instructor_id
        assert course.published is True
        assert course.lessons == []
        assert len(fake_session.rows("courses")) == 1
        assert len(fake_session.rows("courses_by_published")) == 1
        assert fake_session.rows("courses_by_instructor")[0]["title"] == "Python Basics"

        stored = await course_service.get_course(course.id)
        assert stored.price == Decimal("19.90")
        assert stored.tags == ["python"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["title", "description", "category"])
    async def test_required_fields(self, course_service: CourseService, missing: str) -> None:
        data = {"title": "T", "description": "D", "category": "C", missing: "  "}
        with pytest.raises(CourseValidationError):
            await course_service.create_course(CreateCourseRequest(**data), uuid4())


class TestCatalog:
    @pytest.mark.asyncio
    async def test_lists_only_published(self, course_service: CourseService, create_course) -> None:
        public = await create_course(title="Public")
        await create_course(title="Draft", published=False)

        courses = await course_service.list_published()
        assert [c.id for c in courses] == [public.id]

    @pytest.mark.asyncio
    async def test_newest_first(self, course_service: CourseService, create_course) -> None:
        first = await create_course(title="First")
        second = await create_course(title="Second")

        courses = await course_service.list_published()
        assert [c.id for c in courses] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_filters(self, course_service: CourseService, create_course) -> None:
        await create_course(title="Figma 101", category="Design", tags=["ui"])
        python = await create_course(title="Python", category="Programming", level="advanced")

        by_category = await course_service.list_published(category="Programming")
        assert [c.id for c in by_category] == [python.id]

        by_level = await course_service.list_published(level="advanced")
        assert [c.id for c in by_level] == [python.id]

        by_tag = await course_service.list_published(search="UI")
        assert [c.title for c in by_tag] == ["Figma 101"]

    @pytest.mark.asyncio
    async def test_unpublished_course_visible_by_id(
        self, course_service: CourseService, create_course
    ) -> None:
        draft = await create_course(published=False)
        course = await course_service.get_course(draft.id)
        assert course.published is False

    @pytest.mark.asyncio
    async def test_get_missing_course(self, course_service: CourseService) -> None:
        with pytest.raises(CourseNotFoundError):
            await course_service.get_course(uuid4())

    @pytest.mark.asyncio
    async def test_instructor_listing_includes_drafts(
        self, course_service: CourseService, create_course
    ) -> None:
        instructor_id = uuid4()
        await create_course(instructor_id=instructor_id)
        await create_course(instructor_id=instructor_id, published=False)
        await create_course()

        courses = await course_service.list_by_instructor(instructor_id)
        assert len(courses) == 2
        assert all(c.instructor_id == instructor_id for c in courses)


class TestUpdateCourse:
    @pytest.mark.asyncio
    async def test_owner_updates_whitelisted_fields(
        self, course_service: CourseService, create_course
    ) -> None:
        instructor_id = uuid4()
        course = await create_course(instructor_id=instructor_id)

        updated = await course_service.update_course(
            course.id,
            instructor_id,
            UserRole.INSTRUCTOR,
            UpdateCourseRequest(title="Python Advanced", price=Decimal(49)),
        )

        assert updated.title == "Python Advanced"
        assert updated.price == Decimal(49)
        assert updated.instructor_id == instructor_id
        assert updated.updated_at is not None
        stored = await course_service.get_course(course.id)
        assert stored.title == "Python Advanced"
        assert stored.description == course.description

    @pytest.mark.asyncio
    async def test_unpublish_moves_catalog_entry(
        self, course_service: CourseService, create_course
    ) -> None:
        instructor_id = uuid4()
        course = await create_course(instructor_id=instructor_id)

        await course_service.update_course(
            course.id, instructor_id, UserRole.INSTRUCTOR, UpdateCourseRequest(published=False)
        )
        assert await course_service.list_published() == []

        await course_service.update_course(
            course.id, instructor_id, UserRole.INSTRUCTOR, UpdateCourseRequest(published=True)
        )
        assert [c.id for c in await course_service.list_published()] == [course.id]

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(self, course_service: CourseService, create_course) -> None:
        course = await create_course()
        with pytest.raises(CourseAccessDeniedError):
            await course_service.update_course(
                course.id, uuid4(), UserRole.INSTRUCTOR, UpdateCourseRequest(title="Mine")
            )

    @pytest.mark.asyncio
    async def test_admin_may_update_any_course(
        self, course_service: CourseService, create_course
    ) -> None:
        course = await create_course()
        updated = await course_service.update_course(
            course.id, uuid4(), UserRole.ADMIN, UpdateCourseRequest(category="Data")
        )
        assert updated.category == "Data"

    @pytest.mark.asyncio
    async def test_thumbnail_can_be_cleared(
        self, course_service: CourseService, create_course
    ) -> None:
        instructor_id = uuid4()
        course = await create_course(
            instructor_id=instructor_id, thumbnail_url="https://cdn.example.com/a.png"
        )
        updated = await course_service.update_course(
            course.id,
            instructor_id,
            UserRole.INSTRUCTOR,
            UpdateCourseRequest(thumbnail_url=None),
        )
        assert updated.thumbnail_url is None


class TestLessons:
    @pytest.mark.asyncio
    async def test_lessons_get_sequential_order(
        self, course_service: CourseService, create_course
    ) -> None:
        course = await create_course(lessons=3)
        lessons = await course_service.get_lessons(course.id)
        assert [lesson.order for lesson in lessons] == [0, 1, 2]
        assert await course_service.count_lessons(course.id) == 3

    @pytest.mark.asyncio
    async def test_lesson_requires_title_and_content(
        self, course_service: CourseService, create_course
    ) -> None:
        instructor_id = uuid4()
        course = await create_course(instructor_id=instructor_id)
        with pytest.raises(LessonValidationError):
            await course_service.add_lesson(
                course.id,
                instructor_id,
                UserRole.INSTRUCTOR,
                CreateLessonRequest(title="Intro", content=" "),
            )

    @pytest.mark.asyncio
    async def test_non_owner_cannot_add_lesson(
        self, course_service: CourseService, create_course
    ) -> None:
        course = await create_course()
        with pytest.raises(CourseAccessDeniedError):
            await course_service.add_lesson(
                course.id,
                uuid4(),
                UserRole.INSTRUCTOR,
                CreateLessonRequest(title="Intro", content="Hello"),
            )

    @pytest.mark.asyncio
    async def test_taken_position_retries_next_slot(
        self, course_service: CourseService, create_course, fake_session
    ) -> None:
        instructor_id = uuid4()
        course = await create_course(instructor_id=instructor_id)
        raced = {"done": False}

        def concurrent_append(cql: str, params: list) -> None:
            # Another writer claims position 0 right before our insert
            if "INSERT INTO" in cql and "course_lessons" in cql and not raced["done"]:
                raced["done"] = True
                key = (course.id, 0)
                fake_session.tables["course_lessons"][key] = {
                    "course_id": course.id,
                    "position": 0,
                    "title": "Other",
                    "content": "Other",
                    "video_url": None,
                    "duration_minutes": 0,
                    "resources": [],
                    "created_at": course.created_at,
                }

        fake_session.before_execute.append(concurrent_append)
        lesson = await course_service.add_lesson(
            course.id,
            instructor_id,
            UserRole.INSTRUCTOR,
            CreateLessonRequest(title="Mine", content="Body"),
        )

        assert lesson.order == 1
        assert [l.title for l in await course_service.get_lessons(course.id)] == ["Other", "Mine"]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(
        self, course_service: CourseService, create_course, fake_session
    ) -> None:
        instructor_id = uuid4()
        course = await create_course(instructor_id=instructor_id)

        def always_taken(cql: str, params: list) -> None:
            if "INSERT INTO" in cql and "course_lessons" in cql:
                position = params[1]
                fake_session.tables["course_lessons"].setdefault(
                    (course.id, position),
                    {"course_id": course.id, "position": position, "title": "x"},
                )

        fake_session.before_execute.append(always_taken)
        with pytest.raises(LessonOrderConflictError):
            await course_service.add_lesson(
                course.id,
                instructor_id,
                UserRole.INSTRUCTOR,
                CreateLessonRequest(title="Mine", content="Body"),
            )


class TestDeleteCourse:
    @pytest.mark.asyncio
    async def test_removes_course_lessons_and_lookups(
        self, course_service: CourseService, create_course, fake_session
    ) -> None:
        instructor_id = uuid4()
        course = await create_course(instructor_id=instructor_id, lessons=2)

        await course_service.delete_course(course.id, instructor_id, UserRole.INSTRUCTOR)

        assert await course_service.find_course(course.id) is None
        assert fake_session.rows("course_lessons") == []
        assert fake_session.rows("courses_by_published") == []
        assert fake_session.rows("courses_by_instructor") == []

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(self, course_service: CourseService, create_course) -> None:
        course = await create_course()
        with pytest.raises(CourseAccessDeniedError):
            await course_service.delete_course(course.id, uuid4(), UserRole.STUDENT)
        assert await course_service.find_course(course.id) is not None

    @pytest.mark.asyncio
    async def test_cascade_runs_before_and_after_delete(
        self, course_service: CourseService, create_course
    ) -> None:
        instructor_id = uuid4()
        course = await create_course(instructor_id=instructor_id)
        calls: list[bool] = []

        async def handler(course_id) -> None:
            calls.append(await course_service.find_course(course_id) is not None)

        course_service.register_delete_cascade(handler)
        await course_service.delete_course(course.id, instructor_id, UserRole.INSTRUCTOR)

        assert calls == [True, False]

    @pytest.mark.asyncio
    async def test_cascade_is_retried(
        self, course_service: CourseService, create_course, monkeypatch
    ) -> None:
        monkeypatch.setattr("src.courses.service.CASCADE_RETRY_DELAY_SECONDS", 0)
        instructor_id = uuid4()
        course = await create_course(instructor_id=instructor_id)
        failures = {"left": 1}

        async def flaky(course_id) -> None:
            if failures["left"]:
                failures["left"] -= 1
                raise RuntimeError("timeout")

        course_service.register_delete_cascade(flaky)
        await course_service.delete_course(course.id, instructor_id, UserRole.INSTRUCTOR)
        assert await course_service.find_course(course.id) is None

    @pytest.mark.asyncio
    async def test_failed_cascade_keeps_course(
        self, course_service: CourseService, create_course, monkeypatch
    ) -> None:
        monkeypatch.setattr("src.courses.service.CASCADE_RETRY_DELAY_SECONDS", 0)
        instructor_id = uuid4()
        course = await create_course(instructor_id=instructor_id)

        async def broken(course_id) -> None:
            raise RuntimeError("storage down")

        course_service.register_delete_cascade(broken)
        with pytest.raises(CascadeDeleteError):
            await course_service.delete_course(course.id, instructor_id, UserRole.INSTRUCTOR)
        assert await course_service.find_course(course.id) is not None
