"""
RangeTrack — Farm state store.

An immutable snapshot of one user's farm (profile, resources, tasks,
awards) and the pure transitions that produce the next snapshot. Nothing
here touches the database: FarmService persists a change first, then
applies the matching transition to its cached state.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import tzinfo

from rangetrack.core.awards import check_awards
from rangetrack.data.models import Award, Resource, Task, User


@dataclass(frozen=True)
class FarmState:
    user: User | None = None
    resources: tuple[Resource, ...] = field(default_factory=tuple)
    tasks: tuple[Task, ...] = field(default_factory=tuple)
    awards: tuple[Award, ...] = field(default_factory=tuple)

    @property
    def earned_ids(self) -> set[str]:
        return {a.id for a in self.awards}

    def find_task(self, task_id: int) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_resource(self, resource_id: int) -> Resource | None:
        return next((r for r in self.resources if r.id == resource_id), None)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def add_task(state: FarmState, task: Task) -> FarmState:
    """Prepend `task`. A feeding task with a resource and qty draws down that
    resource's quantity; the result may go negative."""
    resources = state.resources
    if task.type == "feeding" and task.resource_id is not None and task.qty:
        resources = tuple(
            dataclasses.replace(r, quantity=r.quantity - task.qty)
            if r.id == task.resource_id and r.quantity
            else r
            for r in resources
        )
    return dataclasses.replace(state, tasks=(task, *state.tasks), resources=resources)


def toggle_task(state: FarmState, task_id: int) -> FarmState:
    return dataclasses.replace(
        state,
        tasks=tuple(
            dataclasses.replace(t, completed=not t.completed) if t.id == task_id else t
            for t in state.tasks
        ),
    )


def update_task(state: FarmState, task_id: int, **updates) -> FarmState:
    return dataclasses.replace(
        state,
        tasks=tuple(
            dataclasses.replace(t, **updates) if t.id == task_id else t
            for t in state.tasks
        ),
    )


def delete_task(state: FarmState, task_id: int) -> FarmState:
    return dataclasses.replace(
        state, tasks=tuple(t for t in state.tasks if t.id != task_id)
    )


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


def add_resource(state: FarmState, resource: Resource) -> FarmState:
    return dataclasses.replace(state, resources=(resource, *state.resources))


def update_resource(state: FarmState, resource_id: int, **updates) -> FarmState:
    return dataclasses.replace(
        state,
        resources=tuple(
            dataclasses.replace(r, **updates) if r.id == resource_id else r
            for r in state.resources
        ),
    )


def delete_resource(state: FarmState, resource_id: int) -> FarmState:
    return dataclasses.replace(
        state, resources=tuple(r for r in state.resources if r.id != resource_id)
    )


# ---------------------------------------------------------------------------
# Awards + profile
# ---------------------------------------------------------------------------


def grant_awards(
    state: FarmState, now_ms: int | None = None, tz: tzinfo | None = None,
) -> tuple[FarmState, list[Award]]:
    """Run the award rules over the current tasks.

    Returns the new state and the awards it gained (empty if none).
    """
    new_awards = check_awards(state.tasks, state.earned_ids, now_ms=now_ms, tz=tz)
    if not new_awards:
        return state, []
    return dataclasses.replace(state, awards=(*state.awards, *new_awards)), new_awards


def update_profile(state: FarmState, **updates) -> FarmState:
    if state.user is None:
        return state
    changes = {k: v for k, v in updates.items() if v is not None}
    return dataclasses.replace(state, user=dataclasses.replace(state.user, **changes))
