"""API tests using FastAPI TestClient."""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone


def _create(client, course, name, **fields):
    resp = client.post(course["modules_url"], json={"name": name, **fields}, headers=course["teacher"])
    assert resp.status_code == 201, resp.text
    return resp.json()


def _positions(client, course):
    resp = client.get(course["modules_url"], params={"per_page": 50}, headers=course["teacher"])
    return {m["name"]: m["position"] for m in resp.json()}


def _add_item(client, course, module_id, title="Read", required=True):
    resp = client.post(
        f"{course['modules_url']}/{module_id}/items",
        json={"title": title, "required": required},
        headers=course["teacher"],
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


def _progress(client, course, module_id, item_id, event="complete"):
    return client.post(
        f"{course['modules_url']}/{module_id}/items/{item_id}/progress",
        json={"event": event},
        headers=course["student"],
    )


# ------------------------------------------------------------------
# Health + auth
# ------------------------------------------------------------------
def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_login_success(client):
    resp = client.post("/auth/login", json={"username": "admin", "password": "admin"})
    assert resp.status_code == 200
    data = resp.json()
    assert "token" in data
    assert data["user"]["role"] == "admin"


def test_login_bad_password(client):
    resp = client.post("/auth/login", json={"username": "admin", "password": "wrongpassword"})
    assert resp.status_code == 401


def test_get_profile(client, admin_headers):
    resp = client.get("/auth/profile", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["username"] == "admin"


def test_modules_require_authentication(client, course):
    assert client.get(course["modules_url"]).status_code == 401


def test_only_admins_create_users(client, course):
    resp = client.post("/auth/users", json={"username": "x", "password": "y"}, headers=course["teacher"])
    assert resp.status_code == 403


def test_create_user_rejects_taken_username_and_unknown_role(client, admin_headers):
    taken = client.post("/auth/users", json={"username": "admin", "password": "y"}, headers=admin_headers)
    assert taken.status_code == 400

    bad_role = client.post(
        "/auth/users", json={"username": "z", "password": "y", "role": "owner"}, headers=admin_headers
    )
    assert bad_role.status_code == 422


# ------------------------------------------------------------------
# Create / ordering
# ------------------------------------------------------------------
def test_create_appends_in_order(client, course):
    first = _create(client, course, "Week 1")
    second = _create(client, course, "Week 2")

    assert first["position"] == 1
    assert second["position"] == 2
    assert first["workflow_state"] == "active"
    assert first["prerequisite_module_ids"] == []
    assert "state" not in first


def test_create_at_position_one_shifts_others(client, course):
    for name in ("A", "B", "C"):
        _create(client, course, name)

    created = _create(client, course, "D", position=1)

    assert created["position"] == 1
    assert _positions(client, course) == {"D": 1, "A": 2, "B": 3, "C": 4}


def test_update_position_keeps_sequence_contiguous(client, course):
    ids = {name: _create(client, course, name)["id"] for name in ("A", "B", "C", "D")}

    resp = client.put(f"{course['modules_url']}/{ids['A']}", json={"position": "3"}, headers=course["teacher"])
    assert resp.status_code == 200
    assert resp.json()["position"] == 3
    assert _positions(client, course) == {"B": 1, "C": 2, "A": 3, "D": 4}

    resp = client.put(f"{course['modules_url']}/{ids['D']}", json={"position": 100}, headers=course["teacher"])
    assert resp.json()["position"] == 4
    assert sorted(_positions(client, course).values()) == [1, 2, 3, 4]


def test_invalid_position_on_create_commits_nothing(client, course):
    _create(client, course, "A")

    resp = client.post(course["modules_url"], json={"name": "B", "position": "abc"}, headers=course["teacher"])

    assert resp.status_code == 400
    assert resp.json()["detail"] == {"errors": {"position": ["Invalid position"]}}
    assert _positions(client, course) == {"A": 1}


def test_invalid_position_on_update_commits_nothing(client, course):
    module = _create(client, course, "A")

    resp = client.put(
        f"{course['modules_url']}/{module['id']}",
        json={"name": "Renamed", "position": "first"},
        headers=course["teacher"],
    )

    assert resp.status_code == 400
    assert _positions(client, course) == {"A": 1}


def test_create_requires_name(client, course):
    resp = client.post(course["modules_url"], json={"position": 1}, headers=course["teacher"])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "missing module name"


def test_draft_mode_course_creates_unpublished_modules(client, course, make_user):
    teacher, _ = make_user("drafter", role="teacher")
    course_id = client.post("/api/v1/courses", json={"name": "Draft", "draft_mode": True}, headers=teacher).json()["id"]

    resp = client.post(f"/api/v1/courses/{course_id}/modules", json={"name": "Hidden"}, headers=teacher)

    assert resp.json()["workflow_state"] == "unpublished"


def test_prerequisites_are_stored_as_given(client, course):
    a = _create(client, course, "A")
    b = _create(client, course, "B", prerequisite_module_ids=[a["id"], 9999, a["id"]])

    assert b["prerequisite_module_ids"] == [a["id"], 9999]

    resp = client.put(f"{course['modules_url']}/{b['id']}", json={"prerequisite_module_ids": []}, headers=course["teacher"])
    assert resp.json()["prerequisite_module_ids"] == []


def test_unusable_prerequisite_ids_are_dropped(client, course):
    a = _create(client, course, "A")
    b = _create(client, course, "B")

    c = _create(client, course, "C", prerequisite_module_ids=[a["id"], "x", str(b["id"]), "1.5"])

    assert c["prerequisite_module_ids"] == [a["id"], b["id"]]


def test_update_fields_and_clear_unlock_at(client, course):
    module = _create(client, course, "A", unlock_at="2030-01-01T00:00:00+00:00")
    assert module["unlock_at"].startswith("2030-01-01")

    url = f"{course['modules_url']}/{module['id']}"
    resp = client.put(url, json={"require_sequential_progress": True, "unpublish": True}, headers=course["teacher"])
    data = resp.json()
    assert data["require_sequential_progress"] is True
    assert data["workflow_state"] == "unpublished"
    assert data["unlock_at"].startswith("2030-01-01")

    resp = client.put(url, json={"unlock_at": None, "publish": True}, headers=course["teacher"])
    assert resp.json()["unlock_at"] is None
    assert resp.json()["workflow_state"] == "active"


def test_student_cannot_create_or_update(client, course):
    module = _create(client, course, "A")

    assert client.post(course["modules_url"], json={"name": "X"}, headers=course["student"]).status_code == 403
    resp = client.put(f"{course['modules_url']}/{module['id']}", json={"name": "X"}, headers=course["student"])
    assert resp.status_code == 403


def test_unknown_course_is_404(client, course):
    assert client.get("/api/v1/courses/4040/modules", headers=course["teacher"]).status_code == 404


# ------------------------------------------------------------------
# Delete
# ------------------------------------------------------------------
def test_delete_renumbers_remaining_modules(client, course):
    ids = {name: _create(client, course, name)["id"] for name in ("A", "B", "C")}

    resp = client.delete(f"{course['modules_url']}/{ids['A']}", headers=course["teacher"])

    assert resp.status_code == 200
    assert resp.json()["workflow_state"] == "deleted"
    assert _positions(client, course) == {"B": 1, "C": 2}
    assert client.get(f"{course['modules_url']}/{ids['A']}", headers=course["teacher"]).status_code == 404
    assert client.delete(f"{course['modules_url']}/{ids['A']}", headers=course["teacher"]).status_code == 404


# ------------------------------------------------------------------
# Batch update
# ------------------------------------------------------------------
def test_batch_delete_skips_missing_ids(client, course):
    a = _create(client, course, "A")["id"]
    b = _create(client, course, "B")["id"]
    _create(client, course, "C")

    resp = client.put(course["modules_url"], json={"event": "delete", "module_ids": [a, b, 9999]}, headers=course["teacher"])

    assert resp.status_code == 200
    assert sorted(resp.json()["completed"]) == sorted([a, b])
    assert _positions(client, course) == {"C": 1}


def test_batch_with_only_missing_ids_is_404(client, course):
    resp = client.put(
        course["modules_url"],
        json={"event": "delete", "module_ids": [9997, 9998, 9999]},
        headers=course["teacher"],
    )
    assert resp.status_code == 404
    assert resp.json()["detail"] == "no modules found"


def test_batch_publish_on_active_module_reports_it(client, course):
    a = _create(client, course, "A")["id"]

    resp = client.put(course["modules_url"], json={"event": "publish", "module_ids": [str(a)]}, headers=course["teacher"])

    assert resp.json() == {"completed": [a]}


def test_batch_unpublish_hides_from_students(client, course):
    a = _create(client, course, "A")["id"]
    client.put(course["modules_url"], json={"event": "unpublish", "module_ids": [a]}, headers=course["teacher"])

    assert client.get(course["modules_url"], headers=course["student"]).json() == []
    assert client.get(f"{course['modules_url']}/{a}", headers=course["student"]).status_code == 404
    assert client.get(f"{course['modules_url']}/{a}", headers=course["teacher"]).json()["workflow_state"] == "unpublished"


def test_batch_parameter_validation(client, course):
    a = _create(client, course, "A")["id"]
    url = course["modules_url"]

    missing_event = client.put(url, json={"module_ids": [a]}, headers=course["teacher"])
    assert missing_event.status_code == 400
    assert missing_event.json()["detail"] == "need to specify event"

    bad_event = client.put(url, json={"event": "archive", "module_ids": [a]}, headers=course["teacher"])
    assert bad_event.status_code == 400
    assert bad_event.json()["detail"] == "invalid event"

    no_ids = client.put(url, json={"event": "delete"}, headers=course["teacher"])
    assert no_ids.status_code == 400
    assert no_ids.json()["detail"] == "must specify module_ids[]"


def test_student_cannot_batch_update(client, course):
    a = _create(client, course, "A")["id"]
    resp = client.put(course["modules_url"], json={"event": "delete", "module_ids": [a]}, headers=course["student"])
    assert resp.status_code == 403


# ------------------------------------------------------------------
# Listing + progression
# ------------------------------------------------------------------
def test_list_is_paginated_with_link_header(client, course):
    for i in range(5):
        _create(client, course, f"M{i}")

    resp = client.get(course["modules_url"], params={"per_page": 2, "page": 2}, headers=course["teacher"])

    assert [m["name"] for m in resp.json()] == ["M2", "M3"]
    assert 'rel="next"' in resp.headers["Link"]
    assert 'rel="prev"' in resp.headers["Link"]


def test_student_sees_progression_teacher_does_not(client, course):
    module = _create(client, course, "A")

    teacher_view = client.get(f"{course['modules_url']}/{module['id']}", headers=course["teacher"]).json()
    student_view = client.get(f"{course['modules_url']}/{module['id']}", headers=course["student"]).json()

    assert "state" not in teacher_view
    assert student_view["state"] == "unlocked"
    assert student_view["completed_at"] is None


def test_future_unlock_at_is_locked_for_students(client, course):
    later = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
    module = _create(client, course, "Later", unlock_at=later)

    student_view = client.get(f"{course['modules_url']}/{module['id']}", headers=course["student"]).json()

    assert student_view["state"] == "locked"


def test_prerequisite_chain_progression(client, course):
    a = _create(client, course, "A")["id"]
    b = _create(client, course, "B", prerequisite_module_ids=[a])["id"]
    _create(client, course, "C", prerequisite_module_ids=[b])
    item_a = _add_item(client, course, a)
    _add_item(client, course, b)

    states = {m["name"]: m["state"] for m in client.get(course["modules_url"], headers=course["student"]).json()}
    assert states == {"A": "unlocked", "B": "locked", "C": "locked"}

    resp = _progress(client, course, a, item_a)
    assert resp.status_code == 200
    assert resp.json()["state"] == "completed"
    assert resp.json()["completed_at"] is not None

    states = {m["name"]: m["state"] for m in client.get(course["modules_url"], headers=course["student"]).json()}
    assert states == {"A": "completed", "B": "unlocked", "C": "locked"}


def test_prerequisite_without_items_does_not_lock_dependents(client, course):
    a = _create(client, course, "Welcome")["id"]
    b = _create(client, course, "Week 1", prerequisite_module_ids=[a])["id"]
    _add_item(client, course, b)

    states = {m["name"]: m["state"] for m in client.get(course["modules_url"], headers=course["student"]).json()}

    assert states == {"Welcome": "unlocked", "Week 1": "unlocked"}


def test_prerequisite_moved_after_module_is_ignored(client, course):
    a = _create(client, course, "A")["id"]
    _add_item(client, course, a)
    b = _create(client, course, "B", prerequisite_module_ids=[a])["id"]

    client.put(f"{course['modules_url']}/{a}", json={"position": 2}, headers=course["teacher"])

    student_view = client.get(f"{course['modules_url']}/{b}", headers=course["student"]).json()
    assert student_view["position"] == 1
    assert student_view["state"] == "unlocked"


def test_locked_module_rejects_progress(client, course):
    a = _create(client, course, "A")["id"]
    _add_item(client, course, a)
    b = _create(client, course, "B", prerequisite_module_ids=[a])["id"]
    item_b = _add_item(client, course, b)

    resp = _progress(client, course, b, item_b)

    assert resp.status_code == 403


def test_sequential_progress_enforces_item_order(client, course):
    module = _create(client, course, "Seq", require_sequential_progress=True)["id"]
    first = _add_item(client, course, module, "One")
    second = _add_item(client, course, module, "Two")

    assert _progress(client, course, module, second).status_code == 403

    started = _progress(client, course, module, first, event="start")
    assert started.json()["state"] == "started"
    assert _progress(client, course, module, first).json()["state"] == "started"
    assert _progress(client, course, module, second).json()["state"] == "completed"


def test_teacher_cannot_record_progress(client, course):
    module = _create(client, course, "A")["id"]
    item = _add_item(client, course, module)

    resp = client.post(
        f"{course['modules_url']}/{module}/items/{item}/progress",
        json={"event": "complete"},
        headers=course["teacher"],
    )
    assert resp.status_code == 403


# ------------------------------------------------------------------
# Concurrency
# ------------------------------------------------------------------
def test_concurrent_inserts_keep_positions_contiguous(client, course):
    for name in ("A", "B", "C"):
        _create(client, course, name)

    def insert_first(i):
        return client.post(
            course["modules_url"],
            json={"name": f"T{i}", "position": 1},
            headers=course["teacher"],
        ).status_code

    with ThreadPoolExecutor(max_workers=8) as pool:
        codes = list(pool.map(insert_first, range(8)))

    assert codes == [201] * 8
    positions = _positions(client, course)
    assert sorted(positions.values()) == list(range(1, 12))
    assert [positions[name] for name in ("A", "B", "C")] == [9, 10, 11]
