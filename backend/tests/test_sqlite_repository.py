"""SQLite repository tests against a throwaway database file."""
import gc
import sqlite3
from datetime import datetime, timezone

import pytest

from coursemodules.domain.account.models import SiteRole, User
from coursemodules.domain.course_module.models import CourseModule, WorkflowState
from coursemodules.persistence import db as database
from coursemodules.persistence.db import course_lock, get_connection
from coursemodules.persistence.interfaces.module_repository import RepositoryError
from coursemodules.persistence.repositories.sqlite import sqlite_item_repository
from coursemodules.persistence.repositories.sqlite.sqlite_course_repository import SqliteCourseRepository
from coursemodules.persistence.repositories.sqlite.sqlite_item_repository import SqliteItemRepository
from coursemodules.persistence.repositories.sqlite.sqlite_module_repository import SqliteModuleRepository
from coursemodules.persistence.repositories.sqlite.sqlite_user_repository import SqliteUserRepository


@pytest.fixture
def course_id(db):
    return SqliteCourseRepository().create("Geometry", draft_mode=False).id


@pytest.fixture
def repo(db):
    return SqliteModuleRepository()


def _add(repo, course_id, name, position, **kwargs):
    return repo.insert(CourseModule(id=0, course_id=course_id, name=name, position=position,
                                    created_at="t", updated_at="t", **kwargs))


def test_insert_and_read_back(repo, course_id):
    unlock = datetime(2030, 1, 1, tzinfo=timezone.utc)
    module = _add(repo, course_id, "Intro", 1, unlock_at=unlock, prerequisite_module_ids=[7, 8],
                  require_sequential_progress=True)

    loaded = repo.get_by_id(course_id, module.id)
    assert loaded.name == "Intro"
    assert loaded.unlock_at == unlock
    assert loaded.prerequisite_module_ids == [7, 8]
    assert loaded.require_sequential_progress is True
    assert loaded.workflow_state is WorkflowState.ACTIVE


def test_swap_positions_does_not_trip_unique_index(repo, course_id):
    a = _add(repo, course_id, "A", 1)
    b = _add(repo, course_id, "B", 2)

    with repo.transaction() as tx:
        repo.save_positions(course_id, {a.id: 2, b.id: 1}, tx=tx)

    assert [m.name for m in repo.list_for_course(course_id)] == ["B", "A"]


def test_duplicate_live_position_is_rejected(repo, course_id):
    _add(repo, course_id, "A", 1)
    with pytest.raises(RepositoryError):
        _add(repo, course_id, "B", 1)


def test_deleted_modules_are_hidden_and_free_their_position(repo, course_id):
    a = _add(repo, course_id, "A", 1)
    a.workflow_state = WorkflowState.DELETED
    repo.save(a)
    b = _add(repo, course_id, "B", 1)

    assert repo.get_by_id(course_id, a.id) is None
    assert [m.id for m in repo.list_for_course(course_id)] == [b.id]
    assert [m.id for m in repo.find_by_ids(course_id, [a.id, b.id, 404])] == [b.id]


def test_list_filters_by_state(repo, course_id):
    _add(repo, course_id, "A", 1)
    _add(repo, course_id, "B", 2, workflow_state=WorkflowState.UNPUBLISHED)

    assert [m.name for m in repo.list_for_course(course_id, states=["active"])] == ["A"]


def test_failed_transaction_rolls_back(repo, course_id):
    a = _add(repo, course_id, "A", 1)
    _add(repo, course_id, "B", 2)

    with pytest.raises(RepositoryError):
        with repo.transaction() as tx:
            a.name = "renamed"
            repo.save(a, tx=tx)
            repo.insert(CourseModule(id=0, course_id=course_id, name="C", position=2,
                                     created_at="t", updated_at="t"), tx=tx)

    assert repo.get_by_id(course_id, a.id).name == "A"


def test_touch_bumps_course_marker(db):
    courses = SqliteCourseRepository()
    course = courses.create("History", draft_mode=True)
    courses.touch(course.id)

    reloaded = courses.get_by_id(course.id)
    assert reloaded.draft_mode is True
    assert reloaded.updated_at >= course.updated_at


def test_item_progress_keeps_first_completion(db, repo, course_id):
    module = _add(repo, course_id, "A", 1)
    items = SqliteItemRepository()
    first = items.add_item(module.id, "Read chapter", required=True)
    second = items.add_item(module.id, "Quiz", required=False)
    conn = get_connection()
    user_id = conn.execute("SELECT id FROM users LIMIT 1").fetchone()["id"]
    conn.close()
    early = datetime(2024, 1, 1, tzinfo=timezone.utc)
    late = datetime(2024, 2, 1, tzinfo=timezone.utc)

    items.record_start(second.id, user_id, early)
    items.record_completion(first.id, user_id, early)
    items.record_completion(first.id, user_id, late)

    assert [i.position for i in items.items_for(module.id)] == [1, 2]
    statuses = items.statuses_for(module.id, user_id)
    assert statuses[first.id].completed_at == early
    assert statuses[second.id].started and not statuses[second.id].completed


def test_failed_item_write_still_closes_connection(db, monkeypatch):
    opened = []

    def tracked_connection():
        conn = get_connection()
        opened.append(conn)
        return conn

    monkeypatch.setattr(sqlite_item_repository, "get_connection", tracked_connection)

    # No such item, so the foreign key rejects the row.
    with pytest.raises(sqlite3.IntegrityError):
        SqliteItemRepository().record_start(404, "nobody", datetime(2024, 1, 1, tzinfo=timezone.utc))

    assert len(opened) == 1
    with pytest.raises(sqlite3.ProgrammingError):
        opened[0].execute("SELECT 1")


def test_course_lock_is_shared_while_held_and_then_released():
    with course_lock(4242):
        held = database._course_locks[4242]
        assert held.locked()
    del held
    gc.collect()

    assert 4242 not in database._course_locks


def test_user_lookup_and_duplicate_username(db):
    users = SqliteUserRepository()
    admin = users.get_by_username("admin")

    assert admin.role is SiteRole.ADMIN
    assert users.get_by_id(admin.id).username == "admin"
    assert users.get_by_username("ghost") is None
    with pytest.raises(RepositoryError):
        users.insert(User(id="u-2", username="admin", password_hash="x", created_at="t"))
