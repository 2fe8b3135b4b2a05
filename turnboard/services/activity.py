"""Append-only activity log.

Appends never abort the caller: a failed write is logged at WARNING and
reported through the returned envelope only.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import (
    ACTIVITY_DATE_RANGE_LIMIT,
    ACTIVITY_ENTITY_LIMIT,
    ACTIVITY_PRUNE_BATCH,
    TOP_USERS_LIMIT,
)
from ..core import clock
from ..core.errors import ErrorCode, NotFoundError, service_operation, store_error_message
from ..models.models import Activity
from ..schemas.schemas import ActivityCreate, ActivityQuery, ActivityRead, ServiceResult, parse_payload

logger = logging.getLogger(__name__)


def serialize_activity(activity: Activity) -> Dict[str, Any]:
    return ActivityRead.model_validate(activity).model_dump()


def log_activity(session: Session, record: Any, *, commit: bool = True) -> ServiceResult:
    try:
        payload = parse_payload(ActivityCreate, record)
    except ValidationError as exc:
        logger.warning("Discarding malformed activity record: %s", exc)
        return ServiceResult.fail(str(exc), ErrorCode.INVALID_INPUT.value)

    entry = Activity(
        user_id=payload.user_id,
        user_name=payload.user_name,
        user_role=payload.user_role,
        action=payload.action,
        action_type=payload.action_type,
        entity_type=payload.entity_type,
        entity_id=payload.entity_id,
        entity_name=payload.entity_name,
        details=dict(payload.metadata),
        timestamp=payload.timestamp or clock.utcnow(),
    )
    try:
        with session.begin_nested():
            session.add(entry)
    except SQLAlchemyError as exc:
        logger.warning("Failed to log activity %s for %s %s: %s", payload.action_type, payload.entity_type, payload.entity_id, exc)
        return ServiceResult.fail(store_error_message(exc), ErrorCode.STORE_ERROR.value)

    if commit:
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("Failed to commit activity %s for %s %s: %s", payload.action_type, payload.entity_type, payload.entity_id, exc)
            return ServiceResult.fail(store_error_message(exc), ErrorCode.STORE_ERROR.value)
    return ServiceResult.ok(serialize_activity(entry))


def record_activity(
    session: Session,
    actor,
    action: str,
    action_type: str,
    entity_type: str,
    entity_id: str,
    entity_name: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> ServiceResult:
    """Attribute an activity to ``actor`` and append it best-effort."""
    return log_activity(
        session,
        {
            "user_id": getattr(actor, "user_id", None),
            "user_name": getattr(actor, "user_name", None),
            "user_role": getattr(actor, "user_role", None),
            "action": action,
            "action_type": action_type,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "entity_name": entity_name,
            "metadata": metadata or {},
        },
    )


def _newest_first(query):
    return query.order_by(Activity.timestamp.desc(), Activity.id.desc())


@service_operation("get activity")
def get_activity_by_id(session: Session, activity_id: str) -> Dict[str, Any]:
    activity = session.get(Activity, activity_id)
    if not activity:
        raise NotFoundError("Activity not found")
    return serialize_activity(activity)


@service_operation("get recent activities", many=True)
def get_recent_activities(session: Session, limit: int = 20) -> List[Dict[str, Any]]:
    rows = _newest_first(session.query(Activity)).limit(limit).all()
    return [serialize_activity(row) for row in rows]


@service_operation("get activities", many=True)
def get_activities(session: Session, options: Any = None) -> List[Dict[str, Any]]:
    options = parse_payload(ActivityQuery, options)
    query = session.query(Activity)
    if options.user_id:
        query = query.filter(Activity.user_id == options.user_id)
    if options.entity_type:
        query = query.filter(Activity.entity_type == options.entity_type)
    if options.entity_id:
        query = query.filter(Activity.entity_id == options.entity_id)
    if options.action_type:
        query = query.filter(Activity.action_type == options.action_type)
    rows = _newest_first(query).limit(options.limit).all()
    return [serialize_activity(row) for row in rows]


@service_operation("get activities by entity", many=True)
def get_activities_by_entity(session: Session, entity_type: str, entity_id: str) -> List[Dict[str, Any]]:
    query = session.query(Activity).filter(Activity.entity_type == entity_type, Activity.entity_id == entity_id)
    return [serialize_activity(row) for row in _newest_first(query).limit(ACTIVITY_ENTITY_LIMIT).all()]


@service_operation("get activities by user", many=True)
def get_activities_by_user(session: Session, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    query = session.query(Activity).filter(Activity.user_id == user_id)
    return [serialize_activity(row) for row in _newest_first(query).limit(limit).all()]


def _in_range(session: Session, start: datetime, end: datetime) -> List[Activity]:
    query = session.query(Activity).filter(
        Activity.timestamp >= clock.ensure_utc(start),
        Activity.timestamp <= clock.ensure_utc(end),
    )
    return _newest_first(query).limit(ACTIVITY_DATE_RANGE_LIMIT).all()


@service_operation("get activities by date range", many=True)
def get_activities_by_date_range(session: Session, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    return [serialize_activity(row) for row in _in_range(session, start, end)]


@service_operation("get activity statistics")
def get_activity_statistics(session: Session, start: datetime, end: datetime) -> Dict[str, Any]:
    activities = _in_range(session, start, end)
    by_action_type = Counter(a.action_type for a in activities)
    by_entity_type = Counter(a.entity_type for a in activities)
    by_user = Counter(a.user_id for a in activities)

    names: Dict[Optional[str], str] = {}
    for activity in activities:
        if activity.user_id not in names and activity.user_name:
            names[activity.user_id] = activity.user_name

    top_users = [
        {"user_id": user_id, "user_name": names.get(user_id, "Unknown"), "activity_count": count}
        for user_id, count in by_user.most_common(TOP_USERS_LIMIT)
    ]
    return {
        "total": len(activities),
        "by_action_type": dict(by_action_type),
        "by_entity_type": dict(by_entity_type),
        "by_user": {str(user_id): count for user_id, count in by_user.items()},
        "top_users": top_users,
    }


@service_operation("delete activity")
def delete_activity(session: Session, activity_id: str) -> None:
    activity = session.get(Activity, activity_id)
    if activity:
        session.delete(activity)
        session.commit()
    return None


@service_operation("delete old activities")
def delete_old_activities(session: Session, days_to_keep: int = 90) -> Dict[str, Any]:
    """Delete at most one batch of activities older than the cutoff.

    Callers loop until ``deleted_count`` drops below ``batch_size``.
    """
    cutoff = clock.utcnow() - timedelta(days=days_to_keep)
    ids = [
        row.id
        for row in session.query(Activity.id)
        .filter(Activity.timestamp < cutoff)
        .order_by(Activity.timestamp.asc())
        .limit(ACTIVITY_PRUNE_BATCH)
        .all()
    ]
    if ids:
        session.query(Activity).filter(Activity.id.in_(ids)).delete(synchronize_session=False)
        session.commit()
    logger.info("Pruned %d activities older than %s", len(ids), cutoff.isoformat())
    return {"deleted_count": len(ids), "cutoff_date": cutoff.isoformat(), "batch_size": ACTIVITY_PRUNE_BATCH}
