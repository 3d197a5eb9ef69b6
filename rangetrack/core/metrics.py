"""Derived farm metrics — pure business logic.

Everything here is recomputed from the in-memory task and resource lists
on every render. No I/O, no caching, and no function raises: degenerate
input degrades to 0 or 100.

All functions accept `now_ms` (epoch ms, defaults to the current clock) so
results are reproducible, and `tz` for calendar-day grouping (defaults to
the local zone).
"""

from __future__ import annotations

import math
import time
from collections import Counter, defaultdict
from datetime import date, datetime, tzinfo
from typing import Iterable

from rangetrack.data.models import Resource, Task

DAY_MS = 24 * 60 * 60 * 1000


def _resolve_now(now_ms: int | None) -> int:
    return int(time.time() * 1000) if now_ms is None else now_ms


def to_datetime(ts: int, tz: tzinfo | None = None) -> datetime:
    """Convert an epoch-ms timestamp to a datetime in `tz` (local if None)."""
    return datetime.fromtimestamp(ts / 1000, tz)


def calendar_day(ts: int, tz: tzinfo | None = None) -> date:
    return to_datetime(ts, tz).date()


# ---------------------------------------------------------------------------
# Headline metrics
# ---------------------------------------------------------------------------


def feed_days_remaining(
    tasks: Iterable[Task],
    resources: Iterable[Resource],
    now_ms: int | None = None,
    tz: tzinfo | None = None,
) -> int:
    """Project how many days the feed stock lasts at last week's usage rate.

    Usage is the mean daily quantity of feeding tasks over the trailing
    7 days, averaged over the days on which feeding was logged. Returns 0
    when no usage was recorded.
    """
    now = _resolve_now(now_ms)
    total_feed = sum(r.quantity or 0 for r in resources if r.type == "feed")

    cutoff = now - 7 * DAY_MS
    feed_by_day: dict[date, int] = defaultdict(int)
    for task in tasks:
        if task.type == "feeding" and task.ts >= cutoff:
            feed_by_day[calendar_day(task.ts, tz)] += task.qty or 0

    days = len(feed_by_day) or 1
    avg_daily_usage = sum(feed_by_day.values()) / days
    if avg_daily_usage <= 0:
        return 0
    return max(0, math.floor(total_feed / avg_daily_usage))


def completion_rate(
    tasks: Iterable[Task],
    window_days: int = 7,
    now_ms: int | None = None,
) -> float:
    """Percentage of tasks in the trailing window that are completed."""
    cutoff = _resolve_now(now_ms) - window_days * DAY_MS
    recent = [t for t in tasks if t.ts >= cutoff]
    if not recent:
        return 0.0
    done = sum(1 for t in recent if t.completed)
    return done / len(recent) * 100


def equipment_uptime(
    tasks: Iterable[Task],
    resource_id: int,
    now_ms: int | None = None,
) -> float:
    """Uptime percentage of a piece of equipment, judged by its repair log.

    Gaps between consecutive repairs count as downtime. The result is
    100 - downtime / days-since-first-repair * 100, clamped to [0, 100].
    """
    repairs = sorted(
        (t for t in tasks if t.type == "repair" and t.resource_id == resource_id),
        key=lambda t: t.ts,
    )
    if not repairs:
        return 100.0

    downtime_days = sum(
        (later.ts - earlier.ts) / DAY_MS for earlier, later in zip(repairs, repairs[1:])
    )
    total_days = (_resolve_now(now_ms) - repairs[0].ts) / DAY_MS
    if total_days <= 0:
        # first repair is now or in the future: nothing has elapsed yet
        return 100.0
    return max(0.0, min(100.0, 100 - downtime_days / total_days * 100))


def resource_utilization(
    tasks: Iterable[Task],
    resource_id: int,
    window_days: int = 30,
    now_ms: int | None = None,
    tz: tzinfo | None = None,
) -> float:
    """Fraction of the window's days on which any task touched the resource."""
    if window_days <= 0:
        return 0.0
    cutoff = _resolve_now(now_ms) - window_days * DAY_MS
    usage_days = {
        calendar_day(t.ts, tz)
        for t in tasks
        if t.resource_id == resource_id and t.ts >= cutoff
    }
    return len(usage_days) / window_days


def average_health(resources: Iterable[Resource]) -> int:
    """Mean health score over resources that carry one; 100 if none do."""
    scores = [r.health for r in resources if r.health is not None]
    if not scores:
        return 100
    return round(sum(scores) / len(scores))


# ---------------------------------------------------------------------------
# Task views
# ---------------------------------------------------------------------------


def todays_tasks(
    tasks: Iterable[Task], now_ms: int | None = None, tz: tzinfo | None = None,
) -> list[Task]:
    today = calendar_day(_resolve_now(now_ms), tz)
    return [t for t in tasks if calendar_day(t.ts, tz) == today]


def upcoming_tasks(
    tasks: Iterable[Task],
    days: int = 7,
    now_ms: int | None = None,
    tz: tzinfo | None = None,
) -> list[Task]:
    """Open tasks scheduled after today and within the next `days` days."""
    today = calendar_day(_resolve_now(now_ms), tz)
    upcoming = []
    for task in tasks:
        if task.completed:
            continue
        delta = (calendar_day(task.ts, tz) - today).days
        if 0 < delta <= days:
            upcoming.append(task)
    return sorted(upcoming, key=lambda t: t.ts)


def tasks_in_range(tasks: Iterable[Task], start_ms: int, end_ms: int) -> list[Task]:
    return [t for t in tasks if start_ms <= t.ts <= end_ms]


# ---------------------------------------------------------------------------
# Aggregates for insights
# ---------------------------------------------------------------------------


def task_stats(
    tasks: Iterable[Task], days: int = 30, now_ms: int | None = None,
) -> dict:
    """Task counts and completion rate over the trailing `days`."""
    now = _resolve_now(now_ms)
    period = tasks_in_range(tasks, now - days * DAY_MS, now)
    completed = sum(1 for t in period if t.completed)
    return {
        "total_tasks": len(period),
        "completed_tasks": completed,
        "completion_rate": completed / len(period) * 100 if period else 0.0,
        "tasks_by_type": dict(Counter(t.type for t in period)),
        "period": f"{days} days",
    }


def resource_summary(resources: Iterable[Resource]) -> dict:
    """Resource counts and total quantity per type."""
    resources = list(resources)
    by_type: dict[str, dict[str, int]] = {}
    for resource in resources:
        bucket = by_type.setdefault(resource.type, {"count": 0, "total_quantity": 0})
        bucket["count"] += 1
        bucket["total_quantity"] += resource.quantity or 0
    return {
        "total_resources": len(resources),
        "active_resources": sum(1 for r in resources if r.status == "active"),
        "resources_by_type": by_type,
    }
