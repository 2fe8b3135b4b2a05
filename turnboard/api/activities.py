from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..api.dependencies import envelope, get_db
from ..auth.identity import Actor, get_current_actor, require_roles
from ..config import settings
from ..schemas.schemas import ActivityCreate
from ..services import activity as activity_service

router = APIRouter()


@router.get("/")
def list_activities(
    user_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action_type: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    options: Dict[str, Any] = {"limit": limit}
    for key, value in (
        ("user_id", user_id),
        ("entity_type", entity_type),
        ("entity_id", entity_id),
        ("action_type", action_type),
    ):
        if value is not None:
            options[key] = value
    return envelope(activity_service.get_activities(db, options))


@router.get("/recent")
def list_recent_activities(
    limit: int = Query(default=20, ge=1, le=500),
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    return envelope(activity_service.get_recent_activities(db, limit=limit))


@router.get("/range")
def list_activities_in_range(start: datetime, end: datetime, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(activity_service.get_activities_by_date_range(db, start, end))


@router.get("/statistics")
def activity_statistics(start: datetime, end: datetime, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(activity_service.get_activity_statistics(db, start, end))


@router.get("/entity/{entity_type}/{entity_id}")
def list_entity_activities(entity_type: str, entity_id: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(activity_service.get_activities_by_entity(db, entity_type, entity_id))


@router.get("/user/{user_id}")
def list_user_activities(
    user_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    return envelope(activity_service.get_activities_by_user(db, user_id, limit=limit))


@router.get("/{activity_id}")
def get_activity(activity_id: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(activity_service.get_activity_by_id(db, activity_id))


@router.post("/")
def append_activity(payload: ActivityCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    record = payload.model_copy(
        update={"user_id": actor.user_id, "user_name": actor.user_name, "user_role": actor.user_role}
    )
    return envelope(activity_service.log_activity(db, record), success_status=status.HTTP_201_CREATED)


@router.delete("/prune")
def prune_activities(
    days_to_keep: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles("Admin")),
):
    return envelope(activity_service.delete_old_activities(db, days_to_keep or settings.activity_retention_days))


@router.delete("/{activity_id}")
def delete_activity(activity_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles("Admin"))):
    return envelope(activity_service.delete_activity(db, activity_id))
