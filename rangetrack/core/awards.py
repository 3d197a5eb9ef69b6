"""Award rules — one-time badges unlocked by the task history.

Each rule is an (id, label, reason, check) entry in AWARD_RULES. The
evaluator skips rules the user already holds and emits one Award for every
other rule whose check passes over the full task list.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import timedelta, tzinfo
from typing import Callable, Iterable, Sequence

from rangetrack.core.metrics import calendar_day, to_datetime
from rangetrack.data.models import Award, Task

logger = logging.getLogger(__name__)

WATERING_STREAK_DAYS = 7
EARLY_BIRD_HOUR = 6
HERD_MOVES_NEEDED = 5


@dataclass(frozen=True)
class AwardRule:
    id: str
    label: str
    reason: str
    check: Callable[[Sequence[Task], tzinfo | None], bool]


def _longest_daily_streak(tasks: Sequence[Task], task_type: str, tz: tzinfo | None) -> int:
    days = sorted({calendar_day(t.ts, tz) for t in tasks if t.type == task_type})
    longest = run = 0
    previous = None
    for day in days:
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        longest = max(longest, run)
        previous = day
    return longest


def _logged_any(task_type: str) -> Callable[[Sequence[Task], tzinfo | None], bool]:
    return lambda tasks, tz: any(t.type == task_type for t in tasks)


AWARD_RULES: tuple[AwardRule, ...] = (
    AwardRule(
        id="first_task",
        label="Farm Starter",
        reason="Logged your first ranch task! Every journey begins with a single log.",
        check=lambda tasks, tz: len(tasks) > 0,
    ),
    AwardRule(
        id="water_wizard",
        label="Water Wizard",
        reason="Kept everything hydrated for 7 days straight. Your plants are practically singing!",
        check=lambda tasks, tz: (
            _longest_daily_streak(tasks, "watering", tz) >= WATERING_STREAK_DAYS
        ),
    ),
    AwardRule(
        id="mr_fix_it",
        label="Mr. Fix-It",
        reason="First equipment repair logged! MacGyver would be proud.",
        check=_logged_any("repair"),
    ),
    AwardRule(
        id="green_thumb",
        label="Green Thumb",
        reason="First harvest recorded! From seed to success - that's farming magic.",
        check=_logged_any("harvest"),
    ),
    AwardRule(
        id="early_bird",
        label="Early Bird",
        reason="Logged a task before 6 AM. The roosters are taking notes!",
        check=lambda tasks, tz: any(
            to_datetime(t.ts, tz).hour < EARLY_BIRD_HOUR for t in tasks
        ),
    ),
    AwardRule(
        id="herd_mover",
        label="Herd Mover",
        reason="Successfully relocated your animals 5 times. They're following you like a celebrity now!",
        check=lambda tasks, tz: (
            sum(1 for t in tasks if t.type == "herd_move") >= HERD_MOVES_NEEDED
        ),
    ),
)


def check_awards(
    tasks: Iterable[Task],
    earned_ids: Iterable[str],
    now_ms: int | None = None,
    tz: tzinfo | None = None,
) -> list[Award]:
    """Return the awards newly earned by `tasks`, in rule order.

    Rules already present in `earned_ids` are skipped, so feeding the result
    back into `earned_ids` makes a repeat call return [].
    """
    tasks = list(tasks)
    earned = set(earned_ids)
    earned_ts = int(time.time() * 1000) if now_ms is None else now_ms

    new_awards: list[Award] = []
    for rule in AWARD_RULES:
        if rule.id in earned:
            continue
        if rule.check(tasks, tz):
            new_awards.append(
                Award(id=rule.id, label=rule.label, reason=rule.reason, earned_ts=earned_ts)
            )

    if new_awards:
        logger.info("New awards: %s", ", ".join(a.id for a in new_awards))
    return new_awards
