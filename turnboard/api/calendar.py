from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..api.dependencies import MANAGER_ROLES, WORKER_ROLES, envelope, get_db
from ..auth.identity import Actor, get_current_actor, require_roles
from ..schemas.schemas import (
    CalendarEventCreate,
    CalendarEventUpdate,
    ConflictCheckPayload,
    ReasonPayload,
    ReschedulePayload,
)
from ..services import calendar as calendar_service

router = APIRouter()


@router.get("/")
def list_events(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    event_type: Optional[str] = None,
    unit_id: Optional[str] = None,
    assigned_to: Optional[str] = None,
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    order_direction: str = "asc",
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    options: Dict[str, Any] = {"limit": limit, "order_direction": order_direction}
    for key, value in (
        ("status", status_filter),
        ("event_type", event_type),
        ("unit_id", unit_id),
        ("assigned_to", assigned_to),
        ("start_from", start_from),
        ("start_to", start_to),
    ):
        if value is not None:
            options[key] = value
    return envelope(calendar_service.get_events(db, options))


@router.get("/upcoming")
def list_upcoming_events(
    days_ahead: int = Query(default=7, ge=1, le=365),
    limit: int = Query(default=20, ge=1, le=500),
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    return envelope(calendar_service.get_upcoming_events(db, days_ahead=days_ahead, limit=limit))


@router.get("/today")
def list_todays_events(db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(calendar_service.get_todays_events(db))


@router.get("/range")
def list_events_in_range(start: datetime, end: datetime, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(calendar_service.get_events_by_date_range(db, start, end))


@router.get("/statistics")
def event_statistics(start: datetime, end: datetime, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(calendar_service.get_event_statistics(db, start, end))


@router.get("/by-unit/{unit_id}")
def list_events_for_unit(unit_id: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(calendar_service.get_events_by_unit(db, unit_id))


@router.get("/by-user/{user_id}")
def list_events_for_user(user_id: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(calendar_service.get_events_by_user(db, user_id))


@router.post("/conflicts")
def check_conflict(payload: ConflictCheckPayload, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(
        calendar_service.check_scheduling_conflict(
            db,
            payload.assigned_to,
            payload.start_date_time,
            payload.end_date_time,
            payload.exclude_event_id,
        )
    )


@router.get("/{event_id}")
def get_event(event_id: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(calendar_service.get_event_by_id(db, event_id))


@router.post("/")
def create_event(
    payload: CalendarEventCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(calendar_service.create_calendar_event(db, payload, actor), success_status=status.HTTP_201_CREATED)


@router.patch("/{event_id}")
def update_event(
    event_id: str,
    payload: CalendarEventUpdate,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(calendar_service.update_calendar_event(db, event_id, payload))


@router.post("/{event_id}/complete")
def complete_event(event_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles(*WORKER_ROLES))):
    return envelope(calendar_service.complete_event(db, event_id))


@router.post("/{event_id}/cancel")
def cancel_event(
    event_id: str,
    payload: ReasonPayload,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(calendar_service.cancel_event(db, event_id, payload.reason))


@router.post("/{event_id}/reschedule")
def reschedule_event(
    event_id: str,
    payload: ReschedulePayload,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(calendar_service.reschedule_event(db, event_id, payload.start_date_time, payload.end_date_time))


@router.delete("/{event_id}")
def delete_event(event_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(calendar_service.delete_calendar_event(db, event_id))
