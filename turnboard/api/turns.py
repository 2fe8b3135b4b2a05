from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..api.dependencies import MANAGER_ROLES, WORKER_ROLES, envelope, get_db
from ..auth.identity import Actor, get_current_actor, require_roles
from ..schemas.schemas import ReasonPayload, TaskUpdate, TurnCreate, TurnQuery, TurnUpdate
from ..services import turns as turn_service

router = APIRouter()


@router.get("/")
def list_turns(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    assigned_technician_id: Optional[str] = None,
    unit_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    order_by: str = "target_completion_date",
    order_direction: str = "asc",
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    options: Dict[str, Any] = {
        "limit": limit,
        "order_by": order_by,
        "order_direction": order_direction,
    }
    if status_filter:
        options["status"] = status_filter
    if assigned_technician_id:
        options["assigned_technician_id"] = assigned_technician_id
    if unit_id:
        options["unit_id"] = unit_id
    return envelope(turn_service.get_turns(db, options))


@router.get("/active")
def list_active_turns(limit: int = Query(default=10, ge=1, le=500), db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(turn_service.get_active_turns(db, limit=limit))


@router.get("/overdue")
def list_overdue_turns(db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(turn_service.get_overdue_turns(db))


@router.get("/by-unit/{unit_id}")
def list_turns_for_unit(unit_id: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(turn_service.get_turns_by_unit(db, unit_id))


@router.get("/by-technician/{technician_id}")
def list_turns_for_technician(technician_id: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(turn_service.get_turns_by_technician(db, technician_id))


@router.get("/{turn_id}")
def get_turn(turn_id: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(turn_service.get_turn_by_id(db, turn_id))


@router.post("/")
def create_turn(
    payload: TurnCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(turn_service.create_turn(db, payload, actor), success_status=status.HTTP_201_CREATED)


@router.patch("/{turn_id}")
def update_turn(
    turn_id: str,
    payload: TurnUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(turn_service.update_turn(db, turn_id, payload, actor))


@router.patch("/{turn_id}/tasks/{task_id}")
def update_task(
    turn_id: str,
    task_id: str,
    payload: TaskUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WORKER_ROLES)),
):
    return envelope(turn_service.update_task(db, turn_id, task_id, payload, actor))


@router.post("/{turn_id}/complete")
def complete_turn(turn_id: str, db: Session = Depends(get_db), actor: Actor = Depends(require_roles(*WORKER_ROLES))):
    return envelope(turn_service.complete_turn(db, turn_id, actor))


@router.post("/{turn_id}/block")
def block_turn(
    turn_id: str,
    payload: ReasonPayload,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WORKER_ROLES)),
):
    return envelope(turn_service.block_turn(db, turn_id, payload.reason, actor))


@router.post("/{turn_id}/resume")
def resume_turn(turn_id: str, db: Session = Depends(get_db), actor: Actor = Depends(require_roles(*WORKER_ROLES))):
    return envelope(turn_service.resume_turn(db, turn_id, actor))


@router.post("/{turn_id}/cancel")
def cancel_turn(
    turn_id: str,
    payload: ReasonPayload,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(turn_service.cancel_turn(db, turn_id, payload.reason, actor))


@router.delete("/{turn_id}")
def delete_turn(turn_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles("Admin"))):
    return envelope(turn_service.delete_turn(db, turn_id))


@router.post("/maintenance/recalculate")
def recalculate_progress(db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(turn_service.recalculate_all_progress(db))


@router.get("/maintenance/drift")
def report_link_drift(db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(turn_service.find_link_drift(db))
