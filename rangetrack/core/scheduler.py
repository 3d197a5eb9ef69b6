"""
RangeTrack — Daily digest.

A proactive morning push per registered user: feed alert, today's tasks
and upcoming work, plus a weather line. Depends on NotificationPort only,
so any messaging provider can deliver it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rangetrack.core.weather import farming_recommendations

if TYPE_CHECKING:
    from rangetrack.core.farm_service import Dashboard, FarmService
    from rangetrack.core.weather import WeatherReport
    from rangetrack.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

FEED_ALERT_DAYS = 7
MAX_DIGEST_TASKS = 5


def build_digest(dashboard: Dashboard, weather: WeatherReport | None = None) -> str:
    """Render the morning digest text for one user."""
    name = dashboard.user.name if dashboard.user else "rancher"
    lines = [f"Good morning, {name}! 🌅", ""]

    feed = dashboard.feed_days_remaining
    if 0 < feed <= FEED_ALERT_DAYS:
        lines.append(f"⚠️ Feed runs out in about {feed} days. Time to reorder.")
        lines.append("")

    if dashboard.todays_tasks:
        lines.append("Today's tasks:")
        for task in dashboard.todays_tasks[:MAX_DIGEST_TASKS]:
            mark = "✅" if task.completed else "⬜"
            lines.append(f"  {mark} #{task.id} {task.type.replace('_', ' ')}")
        extra = len(dashboard.todays_tasks) - MAX_DIGEST_TASKS
        if extra > 0:
            lines.append(f"  ...and {extra} more")
    else:
        lines.append("No tasks logged for today yet.")

    if dashboard.upcoming_tasks:
        lines.append(f"Coming up this week: {len(dashboard.upcoming_tasks)} tasks")

    if weather is not None:
        c = weather.current
        lines.append("")
        lines.append(f"Weather: {c.temp}°F, {c.condition}")
        lines.extend(f"• {tip}" for tip in farming_recommendations(weather))

    return "\n".join(lines)


async def send_daily_digest(
    notifier: NotificationPort,
    service: FarmService,
    weather: WeatherReport | None = None,
) -> None:
    """Send the digest to every registered user. One failure does not stop the rest."""
    for user in service.farmers():
        result = service.dashboard(user.id)
        if not result.ok:
            logger.warning("Daily digest skipped for user %d: %s", user.id, result.error)
            continue
        try:
            await notifier.send_message(user.id, build_digest(result.data, weather))
            logger.info("Daily digest sent to user %d", user.id)
        except Exception as exc:
            logger.error("Failed to send daily digest to %d: %s", user.id, exc)
