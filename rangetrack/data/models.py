"""
RangeTrack — Data Models.

Farm records as plain dataclasses. All timestamps (ts, earned_ts,
last_checked) are epoch milliseconds taken from the client clock at
creation time.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

TASK_TYPES = (
    "feeding",
    "watering",
    "herd_move",
    "repair",
    "harvest",
    "health_check",
    "vaccination",
    "maintenance",
    "other",
)

RESOURCE_TYPES = ("animal", "field", "equipment", "feed")

PRIORITIES = ("low", "medium", "high")

COLLABORATOR_ROLES = ("owner", "manager", "worker", "viewer")
INVITATION_ROLES = ("manager", "worker", "viewer")


@dataclass
class User:
    """The farm owner behind a Telegram account."""

    id: int                  # Telegram user ID
    name: str
    location: str = ""
    email: str = ""
    created_at: str = ""


@dataclass
class Resource:
    """A tracked farm asset: herd, field, equipment or feed stock."""

    id: int
    type: str                         # one of RESOURCE_TYPES
    name: str
    quantity: int | None = None       # may go negative on overfeeding
    status: str | None = None         # e.g. "active", "needs repair"
    health: int | None = None         # 0-100, entered by the user
    last_checked: int | None = None   # epoch ms
    notes: str | None = None
    user_id: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Task:
    """A logged or scheduled farm activity."""

    id: int
    type: str                         # one of TASK_TYPES
    ts: int                           # epoch ms
    resource_id: int | None = None
    qty: int | None = None
    notes: str | None = None
    completed: bool = False
    priority: str | None = None       # one of PRIORITIES
    user_id: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Award:
    """A one-time achievement badge. `id` is the rule id, e.g. "first_task"."""

    id: str
    label: str
    reason: str
    earned_ts: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Collaborator:
    """A team member with access to the owner's farm."""

    id: int
    owner_id: int
    email: str
    name: str = ""
    role: str = "worker"              # one of COLLABORATOR_ROLES
    status: str = "active"            # "active" | "pending" | "invited"
    invited_at: str | None = None
    joined_at: str | None = None


@dataclass
class Invitation:
    """An outstanding invite to join a farm team."""

    id: int
    owner_id: int
    email: str
    role: str = "worker"              # one of INVITATION_ROLES
    status: str = "pending"           # "pending" | "accepted" | "expired" | "cancelled"
    message: str | None = None
    invited_at: str = ""
    expires_at: str = ""
