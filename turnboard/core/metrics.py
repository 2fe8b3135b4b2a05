"""Derived turn and vacancy figures.

All functions are pure; callers pass ``now`` explicitly (normally
``clock.utcnow()``) so the same inputs always produce the same numbers.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional

from .clock import ensure_utc

SECONDS_PER_DAY = 24 * 60 * 60


def _ceil_days(seconds: float) -> int:
    return int(math.ceil(seconds / SECONDS_PER_DAY))


def calculate_progress(checklist: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    tasks = list(checklist or [])
    total_tasks = len(tasks)
    completed_tasks = sum(1 for task in tasks if task.get("completed"))
    percentage = (completed_tasks / total_tasks) * 100 if total_tasks > 0 else 0
    return {
        "total_tasks": total_tasks,
        "completed_tasks": completed_tasks,
        "progress_percentage": round(percentage, 2),
    }


def calculate_days_in_progress(start_date: datetime, now: datetime) -> int:
    elapsed = abs((ensure_utc(now) - ensure_utc(start_date)).total_seconds())
    return _ceil_days(elapsed)


def calculate_days_overdue(target_date: datetime, now: datetime) -> int:
    now = ensure_utc(now)
    target = ensure_utc(target_date)
    if now <= target:
        return 0
    return _ceil_days((now - target).total_seconds())


def calculate_days_vacant(is_vacant: bool, vacant_since: Optional[datetime], now: datetime) -> int:
    if not is_vacant or vacant_since is None:
        return 0
    elapsed = abs((ensure_utc(now) - ensure_utc(vacant_since)).total_seconds())
    return _ceil_days(elapsed)
