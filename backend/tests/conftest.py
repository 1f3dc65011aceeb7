import pytest
from fastapi.testclient import TestClient

from coursemodules.core import config
from coursemodules.persistence.db import init_db


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Point the app at a fresh SQLite file for each test."""
    monkeypatch.setattr(config, "DATABASE_PATH", str(tmp_path / "test.db"))
    init_db()
    return config.DATABASE_PATH


@pytest.fixture
def client(db):
    from coursemodules.main import app
    with TestClient(app) as c:
        yield c


def _login(client, username, password):
    resp = client.post("/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    return {"Authorization": f"Bearer {data['token']}"}, data["user"]["id"]


@pytest.fixture
def admin_headers(client):
    headers, _ = _login(client, config.ADMIN_USERNAME, config.ADMIN_PASSWORD)
    return headers


@pytest.fixture
def make_user(client, admin_headers):
    """Create a site user and return (auth headers, user id)."""
    def _make(username, role="student"):
        resp = client.post(
            "/auth/users",
            json={"username": username, "password": "secret", "role": role},
            headers=admin_headers,
        )
        assert resp.status_code == 201, resp.text
        return _login(client, username, "secret")
    return _make


@pytest.fixture
def course(client, make_user):
    """A course with one teacher and one student enrolled."""
    teacher_headers, _ = make_user("teacher1", role="teacher")
    student_headers, student_id = make_user("student1")

    resp = client.post("/api/v1/courses", json={"name": "Algebra"}, headers=teacher_headers)
    assert resp.status_code == 201, resp.text
    course_id = resp.json()["id"]

    resp = client.post(
        f"/api/v1/courses/{course_id}/enrollments",
        json={"user_id": student_id, "role": "student"},
        headers=teacher_headers,
    )
    assert resp.status_code == 201, resp.text

    return {
        "id": course_id,
        "teacher": teacher_headers,
        "student": student_headers,
        "student_id": student_id,
        "modules_url": f"/api/v1/courses/{course_id}/modules",
    }
