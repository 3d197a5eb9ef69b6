"""
RangeTrack — Farm Database.

The backend: users, resources, tasks, awards, collaborators and invitations
persist in SQLite, every row scoped by its owning Telegram user id.
Any sqlite failure surfaces as BackendError.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator

from rangetrack.core.errors import BackendError
from rangetrack.data.models import Award, Collaborator, Invitation, Resource, Task, User

logger = logging.getLogger(__name__)

INVITATION_TTL_DAYS = 7

_RESOURCE_FIELDS = ("type", "name", "quantity", "status", "health", "last_checked", "notes")
_TASK_FIELDS = ("type", "resource_id", "qty", "notes", "ts", "completed", "priority")


def _now_ms() -> int:
    return int(time.time() * 1000)


class _FarmTable(ABC):
    """Shared connection handling for the farm tables.

    A ":memory:" database lives only as long as its connection, so that
    path keeps one open connection for the life of the table object.
    """

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from rangetrack.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        self._memory_conn: sqlite3.Connection | None = None
        if db_path == ":memory:":
            self._memory_conn = sqlite3.connect(db_path, check_same_thread=False)
            self._memory_conn.row_factory = sqlite3.Row
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn: sqlite3.Connection | None = None
        try:
            conn = self._memory_conn or sqlite3.connect(self._db_path)
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Database error on %s: %s", self._db_path, exc)
            raise BackendError(str(exc)) from exc
        finally:
            if conn is not None and conn is not self._memory_conn:
                conn.close()

    @abstractmethod
    def _init_db(self) -> None:
        """Create this table's schema if it does not exist."""


class UserDB(_FarmTable):
    """SQLite-backed storage for farm owners."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id          INTEGER PRIMARY KEY,
                    name        TEXT NOT NULL,
                    location    TEXT NOT NULL DEFAULT '',
                    email       TEXT NOT NULL DEFAULT '',
                    created_at  TEXT NOT NULL
                )
            """)
        logger.debug("Users table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            name=row["name"],
            location=row["location"],
            email=row["email"],
            created_at=row["created_at"],
        )

    def add_user(
        self, user_id: int, name: str, location: str = "", email: str = "",
    ) -> User:
        """Register a new farm owner."""
        now = datetime.now().isoformat()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO users (id, name, location, email, created_at) VALUES (?, ?, ?, ?, ?)",
                (user_id, name, location, email, now),
            )
        logger.info("User registered: %d '%s'", user_id, name)
        return User(id=user_id, name=name, location=location, email=email, created_at=now)

    def get_user(self, user_id: int) -> User | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def update_profile(
        self,
        user_id: int,
        name: str | None = None,
        location: str | None = None,
        email: str | None = None,
    ) -> User:
        """Update any of name/location/email. Raises BackendError if the user is unknown."""
        updates = {
            key: value
            for key, value in (("name", name), ("location", location), ("email", email))
            if value is not None
        }
        with self._connect() as conn:
            if updates:
                assignments = ", ".join(f"{key} = ?" for key in updates)
                conn.execute(
                    f"UPDATE users SET {assignments} WHERE id = ?",
                    [*updates.values(), user_id],
                )
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise BackendError(f"User {user_id} not found")
        logger.info("Profile updated for user %d", user_id)
        return self._row_to_user(row)

    def list_users(self) -> list[User]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at").fetchall()
        return [self._row_to_user(r) for r in rows]

    def is_registered(self, user_id: int) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone()
        return row is not None


class ResourceDB(_FarmTable):
    """SQLite-backed storage for herds, fields, equipment and feed stock."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS resources (
                    id            INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id       INTEGER NOT NULL,
                    type          TEXT    NOT NULL,
                    name          TEXT    NOT NULL,
                    quantity      INTEGER,
                    status        TEXT,
                    health        INTEGER,
                    last_checked  INTEGER,
                    notes         TEXT,
                    created_at    TEXT    NOT NULL,
                    updated_at    TEXT    NOT NULL
                )
            """)
        logger.debug("Resources table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_resource(row: sqlite3.Row) -> Resource:
        return Resource(
            id=row["id"],
            type=row["type"],
            name=row["name"],
            quantity=row["quantity"],
            status=row["status"],
            health=row["health"],
            last_checked=row["last_checked"],
            notes=row["notes"],
            user_id=row["user_id"],
        )

    def add_resource(
        self,
        user_id: int,
        type: str,
        name: str,
        quantity: int | None = None,
        status: str | None = None,
        health: int | None = None,
        last_checked: int | None = None,
        notes: str | None = None,
    ) -> Resource:
        now = datetime.now().isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO resources
                    (user_id, type, name, quantity, status, health,
                     last_checked, notes, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, type, name, quantity, status, health, last_checked, notes, now, now),
            )
            resource_id = cursor.lastrowid

        logger.info("Resource added: #%d %s '%s'", resource_id, type, name)
        return Resource(
            id=resource_id,
            type=type,
            name=name,
            quantity=quantity,
            status=status,
            health=health,
            last_checked=last_checked,
            notes=notes,
            user_id=user_id,
        )

    def get_resource(self, resource_id: int, user_id: int) -> Resource | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM resources WHERE id = ? AND user_id = ?",
                (resource_id, user_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_resource(row)

    def list_all(self, user_id: int, resource_type: str | None = None) -> list[Resource]:
        """Return the user's resources, newest first, optionally of one type."""
        query = "SELECT * FROM resources WHERE user_id = ?"
        params: list = [user_id]
        if resource_type is not None:
            query += " AND type = ?"
            params.append(resource_type)
        query += " ORDER BY id DESC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_resource(r) for r in rows]

    def update_resource(self, resource_id: int, user_id: int, **updates) -> Resource:
        """Apply field updates. Unknown fields are ignored."""
        fields = {k: v for k, v in updates.items() if k in _RESOURCE_FIELDS}
        fields["updated_at"] = datetime.now().isoformat()
        assignments = ", ".join(f"{key} = ?" for key in fields)

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE resources SET {assignments} WHERE id = ? AND user_id = ?",
                [*fields.values(), resource_id, user_id],
            )
            if cursor.rowcount == 0:
                raise BackendError(f"Resource {resource_id} not found")
            row = conn.execute("SELECT * FROM resources WHERE id = ?", (resource_id,)).fetchone()

        logger.info("Resource #%d updated: %s", resource_id, ", ".join(sorted(fields)))
        return self._row_to_resource(row)

    def delete_resource(self, resource_id: int, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM resources WHERE id = ? AND user_id = ?",
                (resource_id, user_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Resource #%d deleted", resource_id)
        return deleted


class TaskDB(_FarmTable):
    """SQLite-backed storage for logged and scheduled farm tasks."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id           INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id      INTEGER NOT NULL,
                    type         TEXT    NOT NULL,
                    resource_id  INTEGER,
                    qty          INTEGER,
                    notes        TEXT,
                    ts           INTEGER NOT NULL,
                    completed    INTEGER NOT NULL DEFAULT 0,
                    priority     TEXT,
                    created_at   TEXT    NOT NULL,
                    updated_at   TEXT    NOT NULL
                )
            """)
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()
            }
            if "priority" not in existing_cols:
                conn.execute("ALTER TABLE tasks ADD COLUMN priority TEXT")
        logger.debug("Tasks table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            type=row["type"],
            ts=row["ts"],
            resource_id=row["resource_id"],
            qty=row["qty"],
            notes=row["notes"],
            completed=bool(row["completed"]),
            priority=row["priority"],
            user_id=row["user_id"],
        )

    def add_task(
        self,
        user_id: int,
        type: str,
        ts: int | None = None,
        resource_id: int | None = None,
        qty: int | None = None,
        notes: str | None = None,
        completed: bool = False,
        priority: str | None = None,
    ) -> Task:
        """Insert a new task. `ts` defaults to now."""
        if ts is None:
            ts = _now_ms()
        now = datetime.now().isoformat()

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO tasks
                    (user_id, type, resource_id, qty, notes, ts,
                     completed, priority, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, type, resource_id, qty, notes, ts, int(completed), priority, now, now),
            )
            task_id = cursor.lastrowid

        logger.info("Task added: #%d %s (resource=%s)", task_id, type, resource_id)
        return Task(
            id=task_id,
            type=type,
            ts=ts,
            resource_id=resource_id,
            qty=qty,
            notes=notes,
            completed=completed,
            priority=priority,
            user_id=user_id,
        )

    def get_task(self, task_id: int, user_id: int) -> Task | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_all(
        self,
        user_id: int,
        task_type: str | None = None,
        completed: bool | None = None,
    ) -> list[Task]:
        """Return the user's tasks, newest first, optionally filtered."""
        conditions = ["user_id = ?"]
        params: list = [user_id]
        if task_type is not None:
            conditions.append("type = ?")
            params.append(task_type)
        if completed is not None:
            conditions.append("completed = ?")
            params.append(int(completed))

        query = "SELECT * FROM tasks WHERE " + " AND ".join(conditions) + " ORDER BY ts DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def list_in_range(self, user_id: int, start_ms: int, end_ms: int) -> list[Task]:
        """Return tasks with start_ms <= ts <= end_ms, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE user_id = ? AND ts >= ? AND ts <= ? ORDER BY ts DESC",
                (user_id, start_ms, end_ms),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def update_task(self, task_id: int, user_id: int, **updates) -> Task:
        """Apply field updates. Unknown fields are ignored."""
        fields = {k: v for k, v in updates.items() if k in _TASK_FIELDS}
        if "completed" in fields:
            fields["completed"] = int(bool(fields["completed"]))
        fields["updated_at"] = datetime.now().isoformat()
        assignments = ", ".join(f"{key} = ?" for key in fields)

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ? AND user_id = ?",
                [*fields.values(), task_id, user_id],
            )
            if cursor.rowcount == 0:
                raise BackendError(f"Task {task_id} not found")
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()

        logger.info("Task #%d updated: %s", task_id, ", ".join(sorted(fields)))
        return self._row_to_task(row)

    def delete_task(self, task_id: int, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Task #%d deleted", task_id)
        return deleted


class AwardDB(_FarmTable):
    """SQLite-backed storage for earned awards. One row per (user, award id)."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS awards (
                    id          TEXT    NOT NULL,
                    user_id     INTEGER NOT NULL,
                    label       TEXT    NOT NULL,
                    reason      TEXT    NOT NULL,
                    earned_ts   INTEGER NOT NULL,
                    created_at  TEXT    NOT NULL,
                    PRIMARY KEY (user_id, id)
                )
            """)
        logger.debug("Awards table initialized at %s", self._db_path)

    def add_award(self, user_id: int, award: Award) -> bool:
        """Store an award. Returns False if the user already holds it."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO awards (id, user_id, label, reason, earned_ts, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (award.id, user_id, award.label, award.reason, award.earned_ts,
                 datetime.now().isoformat()),
            )
        added = cursor.rowcount > 0
        if added:
            logger.info("Award '%s' granted to user %d", award.id, user_id)
        return added

    def list_all(self, user_id: int) -> list[Award]:
        """Return the user's awards, most recent first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM awards WHERE user_id = ? ORDER BY earned_ts DESC, id",
                (user_id,),
            ).fetchall()
        return [
            Award(id=r["id"], label=r["label"], reason=r["reason"], earned_ts=r["earned_ts"])
            for r in rows
        ]


class TeamDB(_FarmTable):
    """SQLite-backed storage for collaborators and pending invitations."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS collaborators (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id    INTEGER NOT NULL,
                    email       TEXT    NOT NULL,
                    name        TEXT    NOT NULL DEFAULT '',
                    role        TEXT    NOT NULL DEFAULT 'worker',
                    status      TEXT    NOT NULL DEFAULT 'active',
                    invited_at  TEXT,
                    joined_at   TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS invitations (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id    INTEGER NOT NULL,
                    email       TEXT    NOT NULL,
                    role        TEXT    NOT NULL DEFAULT 'worker',
                    status      TEXT    NOT NULL DEFAULT 'pending',
                    message     TEXT,
                    invited_at  TEXT    NOT NULL,
                    expires_at  TEXT    NOT NULL
                )
            """)
        logger.debug("Team tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_collaborator(row: sqlite3.Row) -> Collaborator:
        return Collaborator(
            id=row["id"],
            owner_id=row["owner_id"],
            email=row["email"],
            name=row["name"],
            role=row["role"],
            status=row["status"],
            invited_at=row["invited_at"],
            joined_at=row["joined_at"],
        )

    @staticmethod
    def _row_to_invitation(row: sqlite3.Row) -> Invitation:
        return Invitation(
            id=row["id"],
            owner_id=row["owner_id"],
            email=row["email"],
            role=row["role"],
            status=row["status"],
            message=row["message"],
            invited_at=row["invited_at"],
            expires_at=row["expires_at"],
        )

    # -- collaborators ------------------------------------------------------

    def list_collaborators(self, owner_id: int) -> list[Collaborator]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM collaborators WHERE owner_id = ? ORDER BY id", (owner_id,),
            ).fetchall()
        return [self._row_to_collaborator(r) for r in rows]

    def remove_collaborator(self, collaborator_id: int, owner_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM collaborators WHERE id = ? AND owner_id = ?",
                (collaborator_id, owner_id),
            )
        removed = cursor.rowcount > 0
        if removed:
            logger.info("Collaborator #%d removed from farm %d", collaborator_id, owner_id)
        return removed

    # -- invitations --------------------------------------------------------

    def send_invitation(
        self,
        owner_id: int,
        email: str,
        role: str = "worker",
        message: str | None = None,
    ) -> Invitation:
        """Record a pending invitation that expires after INVITATION_TTL_DAYS."""
        invited = datetime.now()
        invited_at = invited.isoformat()
        expires_at = (invited + timedelta(days=INVITATION_TTL_DAYS)).isoformat()
        email = email.strip().lower()

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO invitations (owner_id, email, role, status, message, invited_at, expires_at)
                VALUES (?, ?, ?, 'pending', ?, ?, ?)
                """,
                (owner_id, email, role, message, invited_at, expires_at),
            )
            invitation_id = cursor.lastrowid

        logger.info("Invitation #%d sent to %s as %s", invitation_id, email, role)
        return Invitation(
            id=invitation_id,
            owner_id=owner_id,
            email=email,
            role=role,
            status="pending",
            message=message,
            invited_at=invited_at,
            expires_at=expires_at,
        )

    def list_invitations(self, owner_id: int, status: str | None = None) -> list[Invitation]:
        """Return invitations, expiring stale pending ones first."""
        now = datetime.now().isoformat()
        query = "SELECT * FROM invitations WHERE owner_id = ?"
        params: list = [owner_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY invited_at DESC"

        with self._connect() as conn:
            conn.execute(
                "UPDATE invitations SET status = 'expired' "
                "WHERE owner_id = ? AND status = 'pending' AND expires_at < ?",
                (owner_id, now),
            )
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_invitation(r) for r in rows]

    def cancel_invitation(self, invitation_id: int, owner_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE invitations SET status = 'cancelled' "
                "WHERE id = ? AND owner_id = ? AND status = 'pending'",
                (invitation_id, owner_id),
            )
        cancelled = cursor.rowcount > 0
        if cancelled:
            logger.info("Invitation #%d cancelled", invitation_id)
        return cancelled

    def accept_invitation(self, invitation_id: int, name: str) -> Collaborator:
        """Turn a pending invitation into an active collaborator."""
        joined_at = datetime.now().isoformat()
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM invitations WHERE id = ?", (invitation_id,),
            ).fetchone()
            if row is None or row["status"] != "pending":
                raise BackendError(f"Invitation {invitation_id} not found")
            if row["expires_at"] < joined_at:
                raise BackendError(f"Invitation {invitation_id} has expired")

            conn.execute(
                "UPDATE invitations SET status = 'accepted' WHERE id = ?", (invitation_id,),
            )
            cursor = conn.execute(
                """
                INSERT INTO collaborators (owner_id, email, name, role, status, invited_at, joined_at)
                VALUES (?, ?, ?, ?, 'active', ?, ?)
                """,
                (row["owner_id"], row["email"], name, row["role"], row["invited_at"], joined_at),
            )
            collaborator_id = cursor.lastrowid

        logger.info("Invitation #%d accepted by '%s'", invitation_id, name)
        return Collaborator(
            id=collaborator_id,
            owner_id=row["owner_id"],
            email=row["email"],
            name=name,
            role=row["role"],
            status="active",
            invited_at=row["invited_at"],
            joined_at=joined_at,
        )
