"""Tests for rangetrack.data.db — the SQLite farm tables."""

import sqlite3
from datetime import datetime, timedelta

import pytest

from rangetrack.core.errors import BackendError
from rangetrack.data.db import INVITATION_TTL_DAYS, TaskDB, UserDB, _FarmTable
from rangetrack.data.models import Award


# ---------------------------------------------------------------------------
# UserDB
# ---------------------------------------------------------------------------


class TestUserDB:
    def test_add_and_get(self, user_db):
        user = user_db.add_user(12345, "Hank", location="Laramie")
        assert user.id == 12345
        fetched = user_db.get_user(12345)
        assert fetched.name == "Hank"
        assert fetched.location == "Laramie"
        assert fetched.created_at

    def test_get_unknown_returns_none(self, user_db):
        assert user_db.get_user(1) is None

    def test_duplicate_user_raises_backend_error(self, user_db):
        user_db.add_user(1, "A")
        with pytest.raises(BackendError, match="UNIQUE"):
            user_db.add_user(1, "B")

    def test_update_profile_partial(self, user_db):
        user_db.add_user(1, "Hank", location="Laramie")
        updated = user_db.update_profile(1, email="hank@example.com")
        assert updated.email == "hank@example.com"
        assert updated.location == "Laramie"

    def test_update_profile_unknown_user(self, user_db):
        with pytest.raises(BackendError, match="not found"):
            user_db.update_profile(99, name="Ghost")

    def test_list_and_is_registered(self, user_db):
        user_db.add_user(1, "A")
        user_db.add_user(2, "B")
        assert {u.id for u in user_db.list_users()} == {1, 2}
        assert user_db.is_registered(1)
        assert not user_db.is_registered(3)


# ---------------------------------------------------------------------------
# ResourceDB
# ---------------------------------------------------------------------------


class TestResourceDB:
    def test_add_and_get(self, resource_db):
        r = resource_db.add_resource(1, "feed", "Hay", quantity=100, status="active")
        assert r.id is not None
        fetched = resource_db.get_resource(r.id, 1)
        assert fetched == r

    def test_scoped_by_user(self, resource_db):
        r = resource_db.add_resource(1, "feed", "Hay")
        assert resource_db.get_resource(r.id, 2) is None
        assert resource_db.list_all(2) == []

    def test_list_newest_first_and_filter(self, resource_db):
        a = resource_db.add_resource(1, "feed", "Hay")
        b = resource_db.add_resource(1, "animal", "Herd")
        assert [r.id for r in resource_db.list_all(1)] == [b.id, a.id]
        assert [r.name for r in resource_db.list_all(1, resource_type="animal")] == ["Herd"]

    def test_update_whitelists_fields(self, resource_db):
        r = resource_db.add_resource(1, "feed", "Hay", quantity=100)
        updated = resource_db.update_resource(r.id, 1, quantity=-20, user_id=999, bogus="x")
        assert updated.quantity == -20
        assert updated.user_id == 1

    def test_update_missing_raises(self, resource_db):
        with pytest.raises(BackendError, match="not found"):
            resource_db.update_resource(42, 1, name="x")

    def test_delete(self, resource_db):
        r = resource_db.add_resource(1, "feed", "Hay")
        assert resource_db.delete_resource(r.id, 2) is False
        assert resource_db.delete_resource(r.id, 1) is True
        assert resource_db.get_resource(r.id, 1) is None


# ---------------------------------------------------------------------------
# TaskDB
# ---------------------------------------------------------------------------


class TestTaskDB:
    def test_add_defaults_ts_to_now(self, task_db):
        before = int(datetime.now().timestamp() * 1000)
        task = task_db.add_task(1, "watering")
        assert task.ts >= before
        assert task.completed is False

    def test_round_trip_fields(self, task_db):
        task = task_db.add_task(1, "feeding", ts=1000, resource_id=5, qty=10, notes="am", priority="high")
        assert task_db.get_task(task.id, 1) == task

    def test_list_filters_and_order(self, task_db):
        task_db.add_task(1, "feeding", ts=1000)
        task_db.add_task(1, "repair", ts=3000, completed=True)
        task_db.add_task(1, "feeding", ts=2000)
        assert [t.ts for t in task_db.list_all(1)] == [3000, 2000, 1000]
        assert len(task_db.list_all(1, task_type="feeding")) == 2
        assert [t.type for t in task_db.list_all(1, completed=True)] == ["repair"]

    def test_list_in_range(self, task_db):
        for ts in (1000, 2000, 3000):
            task_db.add_task(1, "other", ts=ts)
        assert [t.ts for t in task_db.list_in_range(1, 1000, 2000)] == [2000, 1000]

    def test_update_completed(self, task_db):
        task = task_db.add_task(1, "watering", ts=1000)
        assert task_db.update_task(task.id, 1, completed=True).completed is True

    def test_update_other_users_task_raises(self, task_db):
        task = task_db.add_task(1, "watering", ts=1000)
        with pytest.raises(BackendError):
            task_db.update_task(task.id, 2, completed=True)

    def test_delete(self, task_db):
        task = task_db.add_task(1, "watering", ts=1000)
        assert task_db.delete_task(task.id, 1) is True
        assert task_db.delete_task(task.id, 1) is False

    def test_migrates_missing_priority_column(self, tmp_path):
        path = str(tmp_path / "old.db")
        with sqlite3.connect(path) as conn:
            conn.execute("""
                CREATE TABLE tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT, user_id INTEGER NOT NULL,
                    type TEXT NOT NULL, resource_id INTEGER, qty INTEGER, notes TEXT,
                    ts INTEGER NOT NULL, completed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL, updated_at TEXT NOT NULL
                )
            """)
        db = TaskDB(db_path=path)
        task = db.add_task(1, "repair", ts=1, priority="low")
        assert db.get_task(task.id, 1).priority == "low"


# ---------------------------------------------------------------------------
# AwardDB
# ---------------------------------------------------------------------------


class TestAwardDB:
    def _award(self, id="first_task", ts=1000):
        return Award(id=id, label="Farm Starter", reason="First!", earned_ts=ts)

    def test_add_and_list(self, award_db):
        assert award_db.add_award(1, self._award()) is True
        assert award_db.list_all(1) == [self._award()]

    def test_never_awarded_twice(self, award_db):
        award_db.add_award(1, self._award(ts=1000))
        assert award_db.add_award(1, self._award(ts=2000)) is False
        assert [a.earned_ts for a in award_db.list_all(1)] == [1000]

    def test_same_award_for_different_users(self, award_db):
        assert award_db.add_award(1, self._award())
        assert award_db.add_award(2, self._award())

    def test_most_recent_first(self, award_db):
        award_db.add_award(1, self._award("first_task", 1000))
        award_db.add_award(1, self._award("mr_fix_it", 2000))
        assert [a.id for a in award_db.list_all(1)] == ["mr_fix_it", "first_task"]


# ---------------------------------------------------------------------------
# TeamDB
# ---------------------------------------------------------------------------


class TestTeamDB:
    def test_send_invitation(self, team_db):
        inv = team_db.send_invitation(1, "  Luanne@Example.com ", role="manager", message="hi")
        assert inv.email == "luanne@example.com"
        assert inv.status == "pending"
        expires = datetime.fromisoformat(inv.expires_at) - datetime.fromisoformat(inv.invited_at)
        assert expires == timedelta(days=INVITATION_TTL_DAYS)

    def test_list_pending(self, team_db):
        team_db.send_invitation(1, "a@example.com")
        team_db.send_invitation(2, "b@example.com")
        assert [i.email for i in team_db.list_invitations(1, status="pending")] == ["a@example.com"]

    def test_stale_invitations_expire(self, team_db, tmp_db_path):
        inv = team_db.send_invitation(1, "a@example.com")
        past = (datetime.now() - timedelta(days=1)).isoformat()
        with sqlite3.connect(tmp_db_path) as conn:
            conn.execute("UPDATE invitations SET expires_at = ? WHERE id = ?", (past, inv.id))
        assert team_db.list_invitations(1, status="pending") == []
        assert team_db.list_invitations(1)[0].status == "expired"

    def test_cancel(self, team_db):
        inv = team_db.send_invitation(1, "a@example.com")
        assert team_db.cancel_invitation(inv.id, 2) is False
        assert team_db.cancel_invitation(inv.id, 1) is True
        assert team_db.cancel_invitation(inv.id, 1) is False

    def test_accept_creates_collaborator(self, team_db):
        inv = team_db.send_invitation(1, "a@example.com", role="viewer")
        member = team_db.accept_invitation(inv.id, "Bobby")
        assert member.role == "viewer"
        assert member.status == "active"
        assert team_db.list_collaborators(1) == [member]
        assert team_db.list_invitations(1)[0].status == "accepted"

    def test_accept_twice_fails(self, team_db):
        inv = team_db.send_invitation(1, "a@example.com")
        team_db.accept_invitation(inv.id, "Bobby")
        with pytest.raises(BackendError, match="not found"):
            team_db.accept_invitation(inv.id, "Bobby")

    def test_accept_expired_fails(self, team_db, tmp_db_path):
        inv = team_db.send_invitation(1, "a@example.com")
        past = (datetime.now() - timedelta(days=1)).isoformat()
        with sqlite3.connect(tmp_db_path) as conn:
            conn.execute("UPDATE invitations SET expires_at = ? WHERE id = ?", (past, inv.id))
        with pytest.raises(BackendError, match="expired"):
            team_db.accept_invitation(inv.id, "Bobby")
        assert team_db.list_collaborators(1) == []

    def test_remove_collaborator(self, team_db):
        inv = team_db.send_invitation(1, "a@example.com")
        member = team_db.accept_invitation(inv.id, "Bobby")
        assert team_db.remove_collaborator(member.id, 2) is False
        assert team_db.remove_collaborator(member.id, 1) is True
        assert team_db.list_collaborators(1) == []


# ---------------------------------------------------------------------------
# In-memory databases
# ---------------------------------------------------------------------------


class TestInMemoryDB:
    def test_user_table_survives_between_calls(self):
        db = UserDB(db_path=":memory:")
        db.add_user(12345, "Hank")
        assert db.get_user(12345).name == "Hank"
        assert db.is_registered(12345)

    def test_task_rows_persist(self):
        db = TaskDB(db_path=":memory:")
        task = db.add_task(1, "repair", ts=1_000)
        assert [t.id for t in db.list_all(1)] == [task.id]

    def test_errors_still_surface_as_backend_error(self):
        db = UserDB(db_path=":memory:")
        db.add_user(1, "A")
        with pytest.raises(BackendError, match="UNIQUE"):
            db.add_user(1, "B")
        assert db.get_user(1).name == "A"

    def test_base_table_is_abstract(self):
        with pytest.raises(TypeError):
            _FarmTable(db_path=":memory:")
