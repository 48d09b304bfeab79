"""Endpoint tests for enrollment and progress tracking."""

from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from src.auth.permissions import UserRole


@pytest.fixture
def course(client: TestClient, auth_headers) -> dict:
    """Published course with three lessons; returns course JSON plus owner headers."""
    instructor_id = uuid4()
    headers = auth_headers(instructor_id, UserRole.INSTRUCTOR)
    response = client.post(
        "/v1/courses",
        json={"title": "SQL", "description": "Queries", "category": "Data"},
        headers=headers,
    )
    data = response.json()
    for index in range(3):
        client.post(
            f"/v1/courses/{data['id']}/lessons",
            json={"title": f"Lesson {index}", "content": "..."},
            headers=headers,
        )
    return {**data, "owner_headers": headers}


@pytest.fixture
def student(auth_headers) -> tuple[UUID, dict[str, str]]:
    student_id = uuid4()
    return student_id, auth_headers(student_id, UserRole.STUDENT)


class TestEnrollEndpoint:
    def test_enroll(self, client: TestClient, course: dict, student) -> None:
        student_id, headers = student

        response = client.post(f"/v1/courses/{course['id']}/enroll", headers=headers)

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Successfully enrolled"
        assert data["progress"]["progress"] == 0
        assert data["progress"]["completed_lessons"] == []
        assert data["progress"]["user_id"] == str(student_id)

    def test_double_enroll(self, client: TestClient, course: dict, student) -> None:
        _, headers = student
        client.post(f"/v1/courses/{course['id']}/enroll", headers=headers)

        response = client.post(f"/v1/courses/{course['id']}/enroll", headers=headers)

        assert response.status_code == 409
        assert response.json()["code"] == "already_enrolled"
        assert response.json()["message"] == "Already enrolled in this course"

    def test_instructor_self_enroll(self, client: TestClient, course: dict) -> None:
        response = client.post(
            f"/v1/courses/{course['id']}/enroll", headers=course["owner_headers"]
        )
        assert response.status_code == 409
        assert response.json()["code"] == "self_enrollment"

    def test_enroll_unknown_course(self, client: TestClient, student) -> None:
        _, headers = student
        response = client.post(f"/v1/courses/{uuid4()}/enroll", headers=headers)
        assert response.status_code == 404

    def test_enroll_requires_auth(self, client: TestClient, course: dict) -> None:
        response = client.post(f"/v1/courses/{course['id']}/enroll")
        assert response.status_code == 401


class TestProgressEndpoints:
    def test_completion_flow(self, client: TestClient, course: dict, student) -> None:
        _, headers = student
        client.post(f"/v1/courses/{course['id']}/enroll", headers=headers)
        url = f"/v1/progress/{course['id']}"

        assert client.put(url, json={"lesson_index": 0}, headers=headers).json()["progress"] == 33
        assert client.put(url, json={"lesson_index": 1}, headers=headers).json()["progress"] == 67
        final = client.put(url, json={"lesson_index": 2}, headers=headers).json()
        assert final["progress"] == 100
        assert final["completed"] is True
        assert final["completed_at"] is not None

        undone = client.put(
            url, json={"lesson_index": 2, "completed": False}, headers=headers
        ).json()
        assert undone["completed"] is False
        assert undone["completed_at"] is None

        current = client.get(url, headers=headers).json()
        assert current["completed_lessons"] == [0, 1]
        assert current["last_accessed_lesson"] == 2

    def test_index_out_of_range(self, client: TestClient, course: dict, student) -> None:
        _, headers = student
        client.post(f"/v1/courses/{course['id']}/enroll", headers=headers)

        response = client.put(
            f"/v1/progress/{course['id']}", json={"lesson_index": 3}, headers=headers
        )

        assert response.status_code == 422
        assert response.json()["code"] == "invalid_lesson_index"

    def test_not_enrolled(self, client: TestClient, course: dict, student) -> None:
        _, headers = student
        response = client.get(f"/v1/progress/{course['id']}", headers=headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Progress not found. Please enroll first."

    def test_quiz_score(self, client: TestClient, course: dict, student) -> None:
        _, headers = student
        client.post(f"/v1/courses/{course['id']}/enroll", headers=headers)

        response = client.post(
            f"/v1/progress/{course['id']}/quiz-scores",
            json={"lesson_index": 1, "score": 4, "total_questions": 5},
            headers=headers,
        )

        assert response.status_code == 201
        scores = client.get(f"/v1/progress/{course['id']}", headers=headers).json()["quiz_scores"]
        assert [(s["lesson_index"], s["score"]) for s in scores] == [(1, 4)]

    def test_list_my_progress(self, client: TestClient, course: dict, student) -> None:
        _, headers = student
        client.post(f"/v1/courses/{course['id']}/enroll", headers=headers)

        response = client.get("/v1/progress", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["course"]["title"] == "SQL"

    def test_my_enrolled_courses(self, client: TestClient, course: dict, student) -> None:
        _, headers = student
        client.post(f"/v1/courses/{course['id']}/enroll", headers=headers)
        client.put(f"/v1/progress/{course['id']}", json={"lesson_index": 0}, headers=headers)

        response = client.get("/v1/courses/my/enrolled", headers=headers)

        assert response.status_code == 200
        [entry] = response.json()
        assert entry["id"] == course["id"]
        assert entry["progress"] == 33
        assert entry["total_lessons"] == 3
        assert entry["last_accessed"] is not None


class TestRosterEndpoint:
    def test_owner_sees_roster(self, client: TestClient, course: dict, auth_headers) -> None:
        students = [uuid4() for _ in range(2)]
        for student_id in students:
            client.post(
                f"/v1/courses/{course['id']}/enroll",
                headers=auth_headers(student_id, UserRole.STUDENT),
            )

        response = client.get(
            f"/v1/courses/{course['id']}/students", headers=course["owner_headers"]
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert set(data["students"]) == {str(s) for s in students}

    def test_student_cannot_see_roster(self, client: TestClient, course: dict, student) -> None:
        _, headers = student
        response = client.get(f"/v1/courses/{course['id']}/students", headers=headers)
        assert response.status_code == 403

    def test_course_delete_cascades(self, client: TestClient, course: dict, student) -> None:
        _, headers = student
        client.post(f"/v1/courses/{course['id']}/enroll", headers=headers)

        client.delete(f"/v1/courses/{course['id']}", headers=course["owner_headers"])

        assert client.get(f"/v1/progress/{course['id']}", headers=headers).status_code == 404
        assert client.get("/v1/courses/my/enrolled", headers=headers).json() == []
