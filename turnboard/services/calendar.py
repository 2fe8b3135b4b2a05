"""Calendar events and the advisory scheduling-conflict check."""

import logging
from collections import Counter
from datetime import datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..constants import (
    ACTIVE_EVENT_STATUSES,
    CLOSED_EVENT_STATUSES,
    CONFLICT_SCAN_LIMIT,
    EVENT_DATE_RANGE_LIMIT,
    ActivityActionType,
    EntityType,
    EventStatus,
)
from ..core import clock
from ..core.errors import InvalidStateError, NotFoundError, service_operation
from ..models.models import CalendarEvent
from ..schemas.schemas import (
    CalendarEventCreate,
    CalendarEventRead,
    CalendarEventUpdate,
    ConflictCheckPayload,
    EventQuery,
    ReschedulePayload,
    parse_payload,
)
from .activity import record_activity

logger = logging.getLogger(__name__)


def serialize_event(event: CalendarEvent) -> Dict[str, Any]:
    return CalendarEventRead.model_validate(event).model_dump()


def load_event(session: Session, event_id: str) -> CalendarEvent:
    event = session.get(CalendarEvent, event_id)
    if not event:
        raise NotFoundError("Event not found")
    return event


def intervals_overlap(new_start: datetime, new_end: datetime, start: datetime, end: datetime) -> bool:
    """Half-open [start, end) overlap; touching endpoints do not overlap."""
    new_start, new_end = clock.ensure_utc(new_start), clock.ensure_utc(new_end)
    start, end = clock.ensure_utc(start), clock.ensure_utc(end)
    return (
        (start <= new_start < end)
        or (start < new_end <= end)
        or (new_start <= start and new_end >= end)
    )


def _query_events(session: Session, options: EventQuery, statuses: Optional[Iterable[str]] = None):
    query = session.query(CalendarEvent)
    if options.status:
        query = query.filter(CalendarEvent.status == options.status)
    elif statuses:
        query = query.filter(CalendarEvent.status.in_(list(statuses)))
    if options.event_type:
        query = query.filter(CalendarEvent.event_type == options.event_type)
    if options.unit_id:
        query = query.filter(CalendarEvent.unit_id == options.unit_id)
    if options.assigned_to:
        query = query.filter(CalendarEvent.assigned_to == options.assigned_to)
    if options.start_from:
        query = query.filter(CalendarEvent.start_date_time >= options.start_from)
    if options.start_to:
        query = query.filter(CalendarEvent.start_date_time <= options.start_to)
    column = getattr(CalendarEvent, options.order_by)
    query = query.order_by(column.desc() if options.order_direction == "desc" else column.asc())
    return [serialize_event(event) for event in query.limit(options.limit).all()]


@service_operation("create calendar event")
def create_calendar_event(session: Session, payload: Any, actor) -> Dict[str, Any]:
    payload = parse_payload(CalendarEventCreate, payload)
    event = CalendarEvent(
        status=EventStatus.SCHEDULED.value,
        created_by=getattr(actor, "user_id", None),
        **payload.model_dump(),
    )
    session.add(event)
    session.commit()
    session.refresh(event)

    if event.unit_id or event.unit_number:
        record_activity(
            session,
            actor,
            f"{event.event_type} scheduled for Unit {event.unit_number or event.unit_id}",
            ActivityActionType.VENDOR_SCHEDULED.value,
            EntityType.CALENDAR.value,
            event.id,
            entity_name=event.title,
            metadata={
                "event_type": event.event_type,
                "unit_number": event.unit_number,
                "start_date_time": payload.start_date_time.isoformat(),
            },
        )
    return serialize_event(event)


@service_operation("get calendar event")
def get_event_by_id(session: Session, event_id: str) -> Dict[str, Any]:
    return serialize_event(load_event(session, event_id))


@service_operation("get calendar events", many=True)
def get_events(session: Session, options: Any = None) -> List[Dict[str, Any]]:
    return _query_events(session, parse_payload(EventQuery, options))


@service_operation("get upcoming events", many=True)
def get_upcoming_events(session: Session, days_ahead: int = 7, limit: int = 20) -> List[Dict[str, Any]]:
    now = clock.utcnow()
    options = EventQuery(start_from=now, start_to=now + timedelta(days=days_ahead), limit=limit)
    return _query_events(session, options, statuses=ACTIVE_EVENT_STATUSES)


@service_operation("get events by date range", many=True)
def get_events_by_date_range(session: Session, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    options = EventQuery(start_from=start, start_to=end, limit=EVENT_DATE_RANGE_LIMIT)
    return _query_events(session, options)


@service_operation("get events by unit", many=True)
def get_events_by_unit(session: Session, unit_id: str) -> List[Dict[str, Any]]:
    return _query_events(session, EventQuery(unit_id=unit_id, order_direction="desc"))


@service_operation("get events by user", many=True)
def get_events_by_user(session: Session, user_id: str) -> List[Dict[str, Any]]:
    return _query_events(session, EventQuery(assigned_to=user_id), statuses=ACTIVE_EVENT_STATUSES)


def get_todays_events(session: Session):
    now = clock.utcnow()
    today = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    return get_events_by_date_range(session, today, today + timedelta(days=1))


@service_operation("update calendar event")
def update_calendar_event(session: Session, event_id: str, changes: Any) -> Dict[str, Any]:
    changes = parse_payload(CalendarEventUpdate, changes)
    event = load_event(session, event_id)
    for field, value in changes.model_dump(exclude_unset=True).items():
        setattr(event, field, value)
    session.commit()
    return serialize_event(event)


def _ensure_not_closed(event: CalendarEvent, verb: str) -> None:
    if event.status in CLOSED_EVENT_STATUSES:
        raise InvalidStateError(f"Cannot {verb} an event that is {event.status}")


@service_operation("complete calendar event")
def complete_event(session: Session, event_id: str) -> Dict[str, Any]:
    event = load_event(session, event_id)
    _ensure_not_closed(event, "complete")
    event.status = EventStatus.COMPLETED.value
    event.completed_at = clock.utcnow()
    session.commit()
    return serialize_event(event)


@service_operation("cancel calendar event")
def cancel_event(session: Session, event_id: str, reason: str) -> Dict[str, Any]:
    event = load_event(session, event_id)
    _ensure_not_closed(event, "cancel")
    event.status = EventStatus.CANCELLED.value
    event.cancelled_reason = reason
    session.commit()
    return serialize_event(event)


@service_operation("reschedule calendar event")
def reschedule_event(session: Session, event_id: str, start: datetime, end: datetime) -> Dict[str, Any]:
    window = ReschedulePayload(start_date_time=start, end_date_time=end)
    event = load_event(session, event_id)
    _ensure_not_closed(event, "reschedule")
    event.start_date_time = window.start_date_time
    event.end_date_time = window.end_date_time
    event.status = EventStatus.RESCHEDULED.value
    event.reminder_sent = False
    session.commit()
    return serialize_event(event)


@service_operation("delete calendar event")
def delete_calendar_event(session: Session, event_id: str) -> None:
    event = load_event(session, event_id)
    session.delete(event)
    session.commit()
    return None


@service_operation("check scheduling conflict")
def check_scheduling_conflict(
    session: Session,
    assigned_to: str,
    start: datetime,
    end: datetime,
    exclude_event_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Report the assignee's active events that overlap ``[start, end)``.

    Advisory only: nothing stops a caller from booking over a conflict.
    """
    window = ConflictCheckPayload(
        assigned_to=assigned_to,
        start_date_time=start,
        end_date_time=end,
        exclude_event_id=exclude_event_id,
    )
    candidates = (
        session.query(CalendarEvent)
        .filter(
            CalendarEvent.assigned_to == window.assigned_to,
            CalendarEvent.status.in_(ACTIVE_EVENT_STATUSES),
            CalendarEvent.start_date_time < window.end_date_time,
            CalendarEvent.end_date_time > window.start_date_time,
        )
        .order_by(CalendarEvent.start_date_time.asc())
        .limit(CONFLICT_SCAN_LIMIT)
        .all()
    )
    conflicts = [
        serialize_event(event)
        for event in candidates
        if event.id != window.exclude_event_id
        and intervals_overlap(window.start_date_time, window.end_date_time, event.start_date_time, event.end_date_time)
    ]
    return {"has_conflict": bool(conflicts), "conflicts": conflicts}


@service_operation("get event statistics")
def get_event_statistics(session: Session, start: datetime, end: datetime) -> Dict[str, Any]:
    events = (
        session.query(CalendarEvent)
        .filter(CalendarEvent.start_date_time >= clock.ensure_utc(start), CalendarEvent.start_date_time <= clock.ensure_utc(end))
        .limit(EVENT_DATE_RANGE_LIMIT)
        .all()
    )
    by_status = Counter(event.status for event in events)
    return {
        "total": len(events),
        "by_type": dict(Counter(event.event_type for event in events)),
        "by_status": dict(by_status),
        "scheduled": by_status.get(EventStatus.SCHEDULED.value, 0),
        "completed": by_status.get(EventStatus.COMPLETED.value, 0),
        "cancelled": by_status.get(EventStatus.CANCELLED.value, 0),
    }
