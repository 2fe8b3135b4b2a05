from datetime import datetime, timedelta, timezone

import pytest

from turnboard.core.metrics import (
    calculate_days_in_progress,
    calculate_days_overdue,
    calculate_days_vacant,
    calculate_progress,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "flags, expected",
    [
        ([], 0),
        ([False, False, False], 0),
        ([True], 100.0),
        ([True, False, False], 33.33),
        ([True, True, False], 66.67),
        ([True] * 6 + [False] * 6, 50.0),
        ([True] * 7 + [False] * 5, 58.33),
    ],
)
def test_progress_is_rounded_share_of_completed_tasks(flags, expected):
    progress = calculate_progress([{"completed": flag} for flag in flags])

    assert progress["total_tasks"] == len(flags)
    assert progress["completed_tasks"] == sum(flags)
    assert progress["progress_percentage"] == expected


def test_days_overdue_is_zero_until_target_then_counts_started_days():
    target = NOW

    assert calculate_days_overdue(target, NOW - timedelta(days=3)) == 0
    assert calculate_days_overdue(target, NOW) == 0
    assert calculate_days_overdue(target, NOW + timedelta(minutes=1)) == 1
    assert calculate_days_overdue(target, NOW + timedelta(days=1)) == 1
    assert calculate_days_overdue(target, NOW + timedelta(days=1, seconds=1)) == 2


def test_days_overdue_never_decreases_as_time_moves_forward():
    target = NOW
    previous = 0
    for hours in range(0, 24 * 5, 7):
        current = calculate_days_overdue(target, NOW + timedelta(hours=hours))
        assert current >= previous
        previous = current


def test_days_in_progress_uses_absolute_difference():
    assert calculate_days_in_progress(NOW, NOW) == 0
    assert calculate_days_in_progress(NOW, NOW + timedelta(hours=30)) == 2
    assert calculate_days_in_progress(NOW + timedelta(hours=30), NOW) == 2


def test_days_in_progress_accepts_naive_database_values():
    naive_start = datetime(2026, 3, 8, 12, 0)

    assert calculate_days_in_progress(naive_start, NOW) == 2


def test_days_vacant_is_zero_for_occupied_units():
    assert calculate_days_vacant(False, NOW - timedelta(days=9), NOW) == 0
    assert calculate_days_vacant(True, None, NOW) == 0
    assert calculate_days_vacant(True, NOW - timedelta(days=3), NOW) == 3
