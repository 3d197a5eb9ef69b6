"""Tests for rangetrack.core.metrics — derived farm metrics."""

import pytest

from conftest import NOW_MS, ms
from rangetrack.core.metrics import (
    DAY_MS,
    average_health,
    completion_rate,
    equipment_uptime,
    feed_days_remaining,
    resource_summary,
    resource_utilization,
    task_stats,
    tasks_in_range,
    todays_tasks,
    upcoming_tasks,
)
from rangetrack.data.models import Resource, Task


def _task(id, type="feeding", ts=NOW_MS, **kwargs):
    return Task(id=id, type=type, ts=ts, **kwargs)


def _feed(id=1, quantity=100):
    return Resource(id=id, type="feed", name=f"Hay {id}", quantity=quantity)


# ---------------------------------------------------------------------------
# feed_days_remaining
# ---------------------------------------------------------------------------


class TestFeedDaysRemaining:
    def test_no_feeding_returns_zero(self):
        assert feed_days_remaining([], [_feed()], now_ms=NOW_MS) == 0

    def test_single_day_usage(self):
        tasks = [_task(1, qty=10, ts=ms(2025, 6, 14))]
        assert feed_days_remaining(tasks, [_feed(quantity=100)], now_ms=NOW_MS) == 10

    def test_average_over_days_with_feeding(self):
        # 10 + 30 over two distinct days -> 20/day
        tasks = [
            _task(1, qty=10, ts=ms(2025, 6, 13)),
            _task(2, qty=30, ts=ms(2025, 6, 14)),
        ]
        assert feed_days_remaining(tasks, [_feed(quantity=100)], now_ms=NOW_MS) == 5

    def test_same_day_tasks_are_summed(self):
        tasks = [
            _task(1, qty=10, ts=ms(2025, 6, 14, 7)),
            _task(2, qty=15, ts=ms(2025, 6, 14, 18)),
        ]
        assert feed_days_remaining(tasks, [_feed(quantity=100)], now_ms=NOW_MS) == 4

    def test_sums_all_feed_resources(self):
        tasks = [_task(1, qty=10, ts=ms(2025, 6, 14))]
        resources = [_feed(1, 50), _feed(2, 50), Resource(id=3, type="animal", name="Herd", quantity=40)]
        assert feed_days_remaining(tasks, resources, now_ms=NOW_MS) == 10

    def test_ignores_feeding_older_than_a_week(self):
        tasks = [_task(1, qty=10, ts=NOW_MS - 8 * DAY_MS)]
        assert feed_days_remaining(tasks, [_feed()], now_ms=NOW_MS) == 0

    def test_ignores_other_task_types(self):
        tasks = [_task(1, type="watering", qty=10, ts=ms(2025, 6, 14))]
        assert feed_days_remaining(tasks, [_feed()], now_ms=NOW_MS) == 0

    def test_floors_fractional_days(self):
        tasks = [_task(1, qty=30, ts=ms(2025, 6, 14))]
        assert feed_days_remaining(tasks, [_feed(quantity=100)], now_ms=NOW_MS) == 3

    @pytest.mark.parametrize("quantity", [-50, 0, None])
    def test_never_negative(self, quantity):
        tasks = [_task(1, qty=10, ts=ms(2025, 6, 14))]
        assert feed_days_remaining(tasks, [_feed(quantity=quantity)], now_ms=NOW_MS) == 0

    def test_missing_qty_counts_as_zero(self):
        tasks = [_task(1, qty=None, ts=ms(2025, 6, 14))]
        assert feed_days_remaining(tasks, [_feed()], now_ms=NOW_MS) == 0


# ---------------------------------------------------------------------------
# completion_rate
# ---------------------------------------------------------------------------


class TestCompletionRate:
    def test_empty_window_is_zero(self):
        assert completion_rate([], now_ms=NOW_MS) == 0

    def test_all_completed_is_100(self):
        tasks = [_task(i, completed=True, ts=NOW_MS - i * 1000) for i in range(1, 4)]
        assert completion_rate(tasks, now_ms=NOW_MS) == 100

    def test_partial(self):
        tasks = [
            _task(1, completed=True),
            _task(2, completed=False),
            _task(3, completed=True),
            _task(4, completed=False),
        ]
        assert completion_rate(tasks, now_ms=NOW_MS) == 50

    def test_old_tasks_outside_window(self):
        tasks = [
            _task(1, completed=False, ts=NOW_MS - 10 * DAY_MS),
            _task(2, completed=True, ts=NOW_MS - DAY_MS),
        ]
        assert completion_rate(tasks, now_ms=NOW_MS) == 100

    def test_custom_window(self):
        tasks = [_task(1, completed=False, ts=NOW_MS - 10 * DAY_MS)]
        assert completion_rate(tasks, window_days=30, now_ms=NOW_MS) == 0
        assert completion_rate(tasks, window_days=7, now_ms=NOW_MS) == 0


# ---------------------------------------------------------------------------
# equipment_uptime
# ---------------------------------------------------------------------------


class TestEquipmentUptime:
    def test_no_repairs_is_100(self):
        tasks = [_task(1, type="maintenance", resource_id=7)]
        assert equipment_uptime(tasks, 7, now_ms=NOW_MS) == 100

    def test_repairs_for_other_resource_ignored(self):
        tasks = [_task(1, type="repair", resource_id=8, ts=NOW_MS - 5 * DAY_MS)]
        assert equipment_uptime(tasks, 7, now_ms=NOW_MS) == 100

    def test_single_repair_has_no_downtime(self):
        tasks = [_task(1, type="repair", resource_id=7, ts=NOW_MS - 10 * DAY_MS)]
        assert equipment_uptime(tasks, 7, now_ms=NOW_MS) == 100

    def test_gap_between_repairs_counts_as_downtime(self):
        # first repair 10 days ago, second 5 days ago -> 5/10 downtime
        tasks = [
            _task(2, type="repair", resource_id=7, ts=NOW_MS - 5 * DAY_MS),
            _task(1, type="repair", resource_id=7, ts=NOW_MS - 10 * DAY_MS),
        ]
        assert equipment_uptime(tasks, 7, now_ms=NOW_MS) == pytest.approx(50.0)

    def test_clamped_at_zero(self):
        # repairs in the future make downtime exceed elapsed time
        tasks = [
            _task(1, type="repair", resource_id=7, ts=NOW_MS - DAY_MS),
            _task(2, type="repair", resource_id=7, ts=NOW_MS + 5 * DAY_MS),
        ]
        assert equipment_uptime(tasks, 7, now_ms=NOW_MS) == 0

    def test_first_repair_now_is_100(self):
        tasks = [_task(1, type="repair", resource_id=7, ts=NOW_MS)]
        assert equipment_uptime(tasks, 7, now_ms=NOW_MS) == 100


# ---------------------------------------------------------------------------
# resource_utilization + average_health
# ---------------------------------------------------------------------------


class TestResourceUtilization:
    def test_counts_distinct_days(self):
        tasks = [
            _task(1, type="watering", resource_id=3, ts=ms(2025, 6, 14, 8)),
            _task(2, type="watering", resource_id=3, ts=ms(2025, 6, 14, 18)),
            _task(3, type="harvest", resource_id=3, ts=ms(2025, 6, 10)),
            _task(4, type="harvest", resource_id=4, ts=ms(2025, 6, 11)),
        ]
        assert resource_utilization(tasks, 3, window_days=10, now_ms=NOW_MS) == pytest.approx(0.2)

    def test_excludes_tasks_outside_window(self):
        tasks = [_task(1, resource_id=3, ts=NOW_MS - 40 * DAY_MS)]
        assert resource_utilization(tasks, 3, now_ms=NOW_MS) == 0

    def test_unused_resource_is_zero(self):
        assert resource_utilization([], 3, now_ms=NOW_MS) == 0


class TestAverageHealth:
    def test_no_scores_is_100(self):
        assert average_health([Resource(id=1, type="field", name="North")]) == 100

    def test_mean_of_scored_resources(self):
        resources = [
            Resource(id=1, type="animal", name="A", health=80),
            Resource(id=2, type="animal", name="B", health=91),
            Resource(id=3, type="field", name="C"),
        ]
        assert average_health(resources) == 86


# ---------------------------------------------------------------------------
# Task views and aggregates
# ---------------------------------------------------------------------------


class TestTaskViews:
    def test_todays_tasks(self):
        tasks = [
            _task(1, ts=ms(2025, 6, 15, 6)),
            _task(2, ts=ms(2025, 6, 14, 23)),
            _task(3, ts=ms(2025, 6, 15, 21)),
        ]
        assert [t.id for t in todays_tasks(tasks, now_ms=NOW_MS)] == [1, 3]

    def test_upcoming_excludes_today_completed_and_far_future(self):
        tasks = [
            _task(1, ts=ms(2025, 6, 17)),
            _task(2, ts=ms(2025, 6, 16)),
            _task(3, ts=ms(2025, 6, 15, 20)),
            _task(4, ts=ms(2025, 6, 18), completed=True),
            _task(5, ts=ms(2025, 6, 30)),
        ]
        assert [t.id for t in upcoming_tasks(tasks, now_ms=NOW_MS)] == [2, 1]

    def test_tasks_in_range_is_inclusive(self):
        tasks = [_task(1, ts=100), _task(2, ts=200), _task(3, ts=300)]
        assert [t.id for t in tasks_in_range(tasks, 100, 200)] == [1, 2]


class TestAggregates:
    def test_task_stats(self):
        tasks = [
            _task(1, type="feeding", completed=True),
            _task(2, type="feeding"),
            _task(3, type="repair", completed=True),
            _task(4, type="repair", ts=NOW_MS - 40 * DAY_MS),
        ]
        stats = task_stats(tasks, now_ms=NOW_MS)
        assert stats["total_tasks"] == 3
        assert stats["completed_tasks"] == 2
        assert stats["completion_rate"] == pytest.approx(200 / 3)
        assert stats["tasks_by_type"] == {"feeding": 2, "repair": 1}
        assert stats["period"] == "30 days"

    def test_task_stats_empty(self):
        assert task_stats([], now_ms=NOW_MS)["completion_rate"] == 0

    def test_resource_summary(self):
        resources = [
            Resource(id=1, type="feed", name="Hay", quantity=40, status="active"),
            Resource(id=2, type="feed", name="Grain", quantity=10),
            Resource(id=3, type="animal", name="Herd", quantity=12, status="active"),
        ]
        summary = resource_summary(resources)
        assert summary["total_resources"] == 3
        assert summary["active_resources"] == 2
        assert summary["resources_by_type"]["feed"] == {"count": 2, "total_quantity": 50}
        assert summary["resources_by_type"]["animal"] == {"count": 1, "total_quantity": 12}
