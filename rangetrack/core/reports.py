"""
RangeTrack — Farm reports.

`build_report()` summarises a reporting period: task and resource
breakdowns, health buckets, simple trend arrows and recommendations.
`format_report()` renders it as plain text for chat.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Sequence

from rangetrack.core.metrics import DAY_MS, completion_rate, feed_days_remaining
from rangetrack.data.models import Award, Resource, Task

PERIOD_DAYS = {"week": 7, "month": 30, "quarter": 90, "year": 365}
DEFAULT_PERIOD = "month"

COMPLETION_TARGET = 70
LOW_HEALTH = 75

ALL_CLEAR = "Farm operations are running smoothly. Keep up the excellent work!"


@dataclass
class Report:
    period: str
    generated_at: datetime
    summary: dict = field(default_factory=dict)
    tasks_by_type: dict[str, int] = field(default_factory=dict)
    tasks_by_status: dict[str, int] = field(default_factory=dict)
    tasks_by_priority: dict[str, int] = field(default_factory=dict)
    resources_by_type: dict[str, int] = field(default_factory=dict)
    health_status: dict[str, int] = field(default_factory=dict)
    trends: dict[str, str] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)


def health_bucket(health: int | None) -> str:
    score = health or 0
    if score >= 90:
        return "excellent"
    if score >= 75:
        return "good"
    if score >= 50:
        return "fair"
    return "poor"


def _recommendations(
    feed_days: int, rate: float, resources: Sequence[Resource], period_tasks: Sequence[Task],
) -> list[str]:
    recs = []
    if feed_days <= 7:
        recs.append("Urgent: feed inventory is critically low. Order more feed now.")
    elif feed_days <= 14:
        recs.append("Feed inventory is running low. Consider ordering more soon.")

    if rate < COMPLETION_TARGET:
        recs.append("Task completion rate is below target. Review and prioritise pending tasks.")

    low_health = [r for r in resources if r.health and r.health < LOW_HEALTH]
    if low_health:
        recs.append(f"{len(low_health)} resources need attention due to low health scores.")

    urgent = [t for t in period_tasks if t.priority == "high" and not t.completed]
    if urgent:
        recs.append(f"{len(urgent)} high-priority tasks are pending completion.")

    return recs or [ALL_CLEAR]


def build_report(
    tasks: Sequence[Task],
    resources: Sequence[Resource],
    awards: Sequence[Award],
    period: str = DEFAULT_PERIOD,
    now_ms: int | None = None,
    tz: tzinfo | None = None,
) -> Report:
    """Summarise the trailing `period` (week, month, quarter or year)."""
    if period not in PERIOD_DAYS:
        raise ValueError(f"Unknown report period {period!r}. Use one of: {', '.join(PERIOD_DAYS)}")

    now = int(time.time() * 1000) if now_ms is None else now_ms
    days = PERIOD_DAYS[period]
    period_tasks = [t for t in tasks if t.ts >= now - days * DAY_MS]
    completed = sum(1 for t in period_tasks if t.completed)
    rate = completion_rate(period_tasks, window_days=days, now_ms=now)
    feed_days = feed_days_remaining(tasks, resources, now_ms=now, tz=tz)

    priorities = Counter(t.priority or "low" for t in period_tasks)
    health = Counter(health_bucket(r.health) for r in resources)
    health_status = {k: health.get(k, 0) for k in ("excellent", "good", "fair", "poor")}

    if rate > 80:
        completion_trend = "up"
    elif rate < 60:
        completion_trend = "down"
    else:
        completion_trend = "stable"

    return Report(
        period=period,
        generated_at=datetime.fromtimestamp(now / 1000, tz),
        summary={
            "total_tasks": len(period_tasks),
            "completed_tasks": completed,
            "completion_rate": round(rate),
            "total_resources": len(resources),
            "active_resources": sum(1 for r in resources if r.status == "active"),
            "feed_days_remaining": feed_days,
            "total_awards": len(awards),
        },
        tasks_by_type=dict(Counter(t.type for t in period_tasks)),
        tasks_by_status={"completed": completed, "pending": len(period_tasks) - completed},
        tasks_by_priority={p: priorities.get(p, 0) for p in ("high", "medium", "low")},
        resources_by_type=dict(Counter(r.type for r in resources)),
        health_status=health_status,
        trends={
            "task_completion": completion_trend,
            "resource_health": "up" if health_status["excellent"] > health_status["poor"] else "down",
            "activity": "up" if len(period_tasks) > 20 else "stable",
        },
        recommendations=_recommendations(feed_days, rate, resources, period_tasks),
    )


_TREND_ARROWS = {"up": "↑", "down": "↓", "stable": "→"}


def _counts(counts: dict[str, int]) -> list[str]:
    if not counts:
        return ["  (none)"]
    return [f"  {key.replace('_', ' ')}: {value}" for key, value in counts.items()]


def format_report(report: Report) -> str:
    s = report.summary
    lines = [
        f"FARM REPORT - {report.period.upper()} SUMMARY",
        f"Generated: {report.generated_at:%Y-%m-%d}",
        "",
        "Summary",
        f"  Tasks: {s['completed_tasks']}/{s['total_tasks']} completed ({s['completion_rate']}%)",
        f"  Resources: {s['total_resources']} ({s['active_resources']} active)",
        f"  Feed days remaining: {s['feed_days_remaining']}",
        f"  Awards: {s['total_awards']}",
        "",
        "Tasks by type",
        *_counts(report.tasks_by_type),
        "",
        "Tasks by priority",
        *_counts(report.tasks_by_priority),
        "",
        "Resources by type",
        *_counts(report.resources_by_type),
        "",
        "Resource health",
        *_counts(report.health_status),
        "",
        "Trends: " + ", ".join(
            f"{name.replace('_', ' ')} {_TREND_ARROWS[direction]}"
            for name, direction in report.trends.items()
        ),
        "",
        "Recommendations",
        *(f"  • {rec}" for rec in report.recommendations),
    ]
    return "\n".join(lines)
