from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..constants import OPEN_TURN_STATUSES, TurnStatus
from ..core import clock
from ..core.errors import service_operation
from ..models.models import Turn
from .activity import get_recent_activities
from .calendar import get_upcoming_events
from .units import get_units_statistics


@service_operation("build dashboard summary")
def get_dashboard_summary(session: Session, upcoming_limit: int = 5, activity_limit: int = 10) -> Dict[str, Any]:
    """Read-only snapshot for the dashboard; writes nothing."""
    now = clock.utcnow()
    open_turns = session.query(Turn).filter(Turn.status.in_(OPEN_TURN_STATUSES))
    average_progress = session.query(func.avg(Turn.progress_percentage)).filter(
        Turn.status.in_(OPEN_TURN_STATUSES)
    ).scalar()

    units = get_units_statistics(session)
    upcoming = get_upcoming_events(session, limit=upcoming_limit)
    recent = get_recent_activities(session, limit=activity_limit)
    return {
        "units": units.data if units.success else None,
        "active_turns": open_turns.filter(Turn.status == TurnStatus.IN_PROGRESS.value).count(),
        "blocked_turns": open_turns.filter(Turn.status == TurnStatus.BLOCKED.value).count(),
        "overdue_turns": open_turns.filter(Turn.target_completion_date < now).count(),
        "average_progress": round(average_progress or 0, 2),
        "upcoming_events": upcoming.data,
        "recent_activity": recent.data,
    }
