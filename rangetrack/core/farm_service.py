"""
RangeTrack — UI-Agnostic Farm Service.

Orchestrates every farm operation: validate input -> write to the
database -> apply the matching store transition -> evaluate awards ->
return a ServiceResult. The Telegram bot (or any other front end) renders
results and never talks to the database directly.

Failures never escape as exceptions: validation messages pass through
unchanged, backend errors are translated by `friendly_error`, anything
else is logged and reported generically.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from rangetrack.core import metrics, store
from rangetrack.core.assistant import FarmContext, build_farm_context
from rangetrack.core.errors import GENERIC_ERROR, BackendError, ValidationError, friendly_error
from rangetrack.core.reports import DEFAULT_PERIOD, Report, build_report
from rangetrack.core.store import FarmState
from rangetrack.core.validation import (
    validate_email,
    validate_location,
    validate_name,
    validate_priority,
    validate_resource_type,
    validate_role,
    validate_task_type,
)

if TYPE_CHECKING:
    from rangetrack.data.db import AwardDB, ResourceDB, TaskDB, TeamDB, UserDB
    from rangetrack.data.models import Award, Collaborator, Invitation, Resource, Task, User

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


@dataclass
class ServiceResult(Generic[T]):
    data: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TaskLogged:
    task: Task
    new_awards: list[Award] = field(default_factory=list)


@dataclass
class Dashboard:
    user: User | None
    feed_days_remaining: int
    completion_rate: float
    average_health: int
    equipment_uptime: float
    todays_tasks: list[Task] = field(default_factory=list)
    upcoming_tasks: list[Task] = field(default_factory=list)
    award_count: int = 0


@dataclass
class Insights:
    task_stats: dict
    resource_summary: dict
    utilization: dict[int, float] = field(default_factory=dict)   # resource id -> fraction of days
    uptime: dict[int, float] = field(default_factory=dict)        # equipment id -> percent


@dataclass
class Team:
    collaborators: list[Collaborator] = field(default_factory=list)
    invitations: list[Invitation] = field(default_factory=list)


# ---------------------------------------------------------------------------
# FarmService
# ---------------------------------------------------------------------------


class FarmService:
    """Farm operations for every user, with a per-user cached FarmState."""

    def __init__(
        self,
        user_db: UserDB,
        resource_db: ResourceDB,
        task_db: TaskDB,
        award_db: AwardDB,
        team_db: TeamDB,
        tz: tzinfo | None = None,
    ) -> None:
        self._users = user_db
        self._resources = resource_db
        self._tasks = task_db
        self._awards = award_db
        self._team = team_db
        self._tz = tz
        self._states: dict[int, FarmState] = {}

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _run(self, action: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> ServiceResult[T]:
        try:
            return ServiceResult(data=fn(*args, **kwargs))
        except ValidationError as exc:
            return ServiceResult(error=str(exc))
        except BackendError as exc:
            logger.error("%s failed: %s", action, exc)
            return ServiceResult(error=friendly_error(exc))
        except Exception:
            logger.exception("Unexpected error during %s", action)
            return ServiceResult(error=GENERIC_ERROR)

    def state(self, user_id: int) -> FarmState:
        """Return the cached state, loading it from the database on first use."""
        if user_id not in self._states:
            self._states[user_id] = FarmState(
                user=self._users.get_user(user_id),
                resources=tuple(self._resources.list_all(user_id)),
                tasks=tuple(self._tasks.list_all(user_id)),
                awards=tuple(self._awards.list_all(user_id)),
            )
            logger.debug("Loaded farm state for user %d", user_id)
        return self._states[user_id]

    def forget(self, user_id: int) -> None:
        self._states.pop(user_id, None)

    def farmers(self) -> list[User]:
        """Every registered user, oldest first."""
        return self._users.list_users()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def register(self, user_id: int, name: str) -> ServiceResult[User]:
        """Create the user on first contact; return the existing one otherwise."""
        def _register() -> User:
            existing = self._users.get_user(user_id)
            if existing is not None:
                return existing
            user = self._users.add_user(user_id, (name or "").strip() or "Rancher")
            self.forget(user_id)
            return user

        return self._run("register", _register)

    def update_profile(
        self,
        user_id: int,
        name: str | None = None,
        location: str | None = None,
        email: str | None = None,
    ) -> ServiceResult[User]:
        def _update() -> User:
            cleaned = {
                "name": validate_name(name) if name is not None else None,
                "location": validate_location(location) if location is not None else None,
                "email": validate_email(email) if email is not None else None,
            }
            user = self._users.update_profile(user_id, **cleaned)
            self._states[user_id] = store.update_profile(self.state(user_id), **cleaned)
            return user

        return self._run("update_profile", _update)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def add_task(
        self,
        user_id: int,
        task_type: str,
        resource_id: int | None = None,
        qty: int | None = None,
        notes: str | None = None,
        priority: str | None = None,
        ts: int | None = None,
    ) -> ServiceResult[TaskLogged]:
        """Log a task, draw down feed stock for feeding, and check awards."""
        def _add() -> TaskLogged:
            task_type_ = validate_task_type(task_type)
            priority_ = validate_priority(priority) if priority else None
            current = self.state(user_id)

            resource = None
            if resource_id is not None:
                resource = current.find_resource(resource_id)
                if resource is None:
                    raise ValidationError(f"Resource #{resource_id} not found.")

            task = self._tasks.add_task(
                user_id,
                task_type_,
                ts=ts,
                resource_id=resource_id,
                qty=qty,
                notes=notes,
                priority=priority_,
            )
            try:
                if task_type_ == "feeding" and resource is not None and qty and resource.quantity:
                    self._resources.update_resource(
                        resource.id, user_id, quantity=resource.quantity - qty,
                    )
            except Exception:
                # task row is already committed: reload from the database next time
                self.forget(user_id)
                raise

            updated = store.add_task(current, task)
            self._states[user_id] = updated
            updated, new_awards = store.grant_awards(updated, tz=self._tz)
            for award in new_awards:
                self._awards.add_award(user_id, award)
            self._states[user_id] = updated
            return TaskLogged(task=task, new_awards=new_awards)

        return self._run("add_task", _add)

    def toggle_task(self, user_id: int, task_id: int) -> ServiceResult[Task]:
        def _toggle() -> Task:
            task = self.state(user_id).find_task(task_id)
            if task is None:
                raise BackendError(f"Task {task_id} not found")
            updated = self._tasks.update_task(task_id, user_id, completed=not task.completed)
            self._states[user_id] = store.toggle_task(self.state(user_id), task_id)
            return updated

        return self._run("toggle_task", _toggle)

    def update_task(self, user_id: int, task_id: int, **updates: Any) -> ServiceResult[Task]:
        def _update() -> Task:
            if "type" in updates:
                updates["type"] = validate_task_type(updates["type"])
            if updates.get("priority"):
                updates["priority"] = validate_priority(updates["priority"])
            task = self._tasks.update_task(task_id, user_id, **updates)
            changes = {k: getattr(task, k) for k in updates if hasattr(task, k)}
            self._states[user_id] = store.update_task(self.state(user_id), task_id, **changes)
            return task

        return self._run("update_task", _update)

    def delete_task(self, user_id: int, task_id: int) -> ServiceResult[bool]:
        def _delete() -> bool:
            if not self._tasks.delete_task(task_id, user_id):
                raise BackendError(f"Task {task_id} not found")
            self._states[user_id] = store.delete_task(self.state(user_id), task_id)
            return True

        return self._run("delete_task", _delete)

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def add_resource(
        self,
        user_id: int,
        resource_type: str,
        name: str,
        quantity: int | None = None,
        status: str | None = "active",
        health: int | None = None,
        notes: str | None = None,
    ) -> ServiceResult[Resource]:
        def _add() -> Resource:
            type_ = validate_resource_type(resource_type)
            clean_name = (name or "").strip()
            if not clean_name:
                raise ValidationError("Please give the resource a name.")
            resource = self._resources.add_resource(
                user_id,
                type_,
                clean_name,
                quantity=quantity,
                status=status,
                health=health,
                last_checked=int(time.time() * 1000),
                notes=notes,
            )
            self._states[user_id] = store.add_resource(self.state(user_id), resource)
            return resource

        return self._run("add_resource", _add)

    def update_resource(self, user_id: int, resource_id: int, **updates: Any) -> ServiceResult[Resource]:
        def _update() -> Resource:
            if "type" in updates:
                updates["type"] = validate_resource_type(updates["type"])
            if "health" in updates:
                updates["last_checked"] = int(time.time() * 1000)
            resource = self._resources.update_resource(resource_id, user_id, **updates)
            changes = {k: getattr(resource, k) for k in updates if hasattr(resource, k)}
            self._states[user_id] = store.update_resource(self.state(user_id), resource_id, **changes)
            return resource

        return self._run("update_resource", _update)

    def delete_resource(self, user_id: int, resource_id: int) -> ServiceResult[bool]:
        def _delete() -> bool:
            if not self._resources.delete_resource(resource_id, user_id):
                raise BackendError(f"Resource {resource_id} not found")
            self._states[user_id] = store.delete_resource(self.state(user_id), resource_id)
            return True

        return self._run("delete_resource", _delete)

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def dashboard(self, user_id: int, now_ms: int | None = None) -> ServiceResult[Dashboard]:
        def _build() -> Dashboard:
            s = self.state(user_id)
            equipment = [r for r in s.resources if r.type == "equipment"]
            uptimes = [metrics.equipment_uptime(s.tasks, r.id, now_ms=now_ms) for r in equipment]
            return Dashboard(
                user=s.user,
                feed_days_remaining=metrics.feed_days_remaining(s.tasks, s.resources, now_ms=now_ms, tz=self._tz),
                completion_rate=metrics.completion_rate(s.tasks, now_ms=now_ms),
                average_health=metrics.average_health(s.resources),
                equipment_uptime=sum(uptimes) / len(uptimes) if uptimes else 100.0,
                todays_tasks=metrics.todays_tasks(s.tasks, now_ms=now_ms, tz=self._tz),
                upcoming_tasks=metrics.upcoming_tasks(s.tasks, now_ms=now_ms, tz=self._tz),
                award_count=len(s.awards),
            )

        return self._run("dashboard", _build)

    def insights(self, user_id: int, now_ms: int | None = None) -> ServiceResult[Insights]:
        def _build() -> Insights:
            s = self.state(user_id)
            return Insights(
                task_stats=metrics.task_stats(s.tasks, now_ms=now_ms),
                resource_summary=metrics.resource_summary(s.resources),
                utilization={
                    r.id: metrics.resource_utilization(s.tasks, r.id, now_ms=now_ms, tz=self._tz)
                    for r in s.resources
                },
                uptime={
                    r.id: metrics.equipment_uptime(s.tasks, r.id, now_ms=now_ms)
                    for r in s.resources
                    if r.type == "equipment"
                },
            )

        return self._run("insights", _build)

    def report(
        self, user_id: int, period: str = DEFAULT_PERIOD, now_ms: int | None = None,
    ) -> ServiceResult[Report]:
        def _build() -> Report:
            s = self.state(user_id)
            try:
                return build_report(s.tasks, s.resources, s.awards, period, now_ms=now_ms, tz=self._tz)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc

        return self._run("report", _build)

    def farm_context(self, user_id: int, now_ms: int | None = None) -> FarmContext:
        s = self.state(user_id)
        return build_farm_context(s.tasks, s.resources, now_ms=now_ms, tz=self._tz)

    # ------------------------------------------------------------------
    # Team
    # ------------------------------------------------------------------

    def team(self, owner_id: int) -> ServiceResult[Team]:
        return self._run(
            "team",
            lambda: Team(
                collaborators=self._team.list_collaborators(owner_id),
                invitations=self._team.list_invitations(owner_id, status="pending"),
            ),
        )

    def invite(
        self, owner_id: int, email: str, role: str = "worker", message: str | None = None,
    ) -> ServiceResult[Invitation]:
        return self._run(
            "invite",
            lambda: self._team.send_invitation(
                owner_id, validate_email(email), validate_role(role), message,
            ),
        )

    def cancel_invitation(self, owner_id: int, invitation_id: int) -> ServiceResult[bool]:
        def _cancel() -> bool:
            if not self._team.cancel_invitation(invitation_id, owner_id):
                raise BackendError(f"Invitation {invitation_id} not found")
            return True

        return self._run("cancel_invitation", _cancel)

    def remove_member(self, owner_id: int, collaborator_id: int) -> ServiceResult[bool]:
        def _remove() -> bool:
            if not self._team.remove_collaborator(collaborator_id, owner_id):
                raise BackendError(f"Collaborator {collaborator_id} not found")
            return True

        return self._run("remove_member", _remove)

    def join(self, user_id: int, invitation_id: int) -> ServiceResult[Collaborator]:
        def _join() -> Collaborator:
            user = self._users.get_user(user_id)
            name = user.name if user is not None else ""
            return self._team.accept_invitation(invitation_id, name)

        return self._run("join", _join)
