from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from ..api.dependencies import MANAGER_ROLES, envelope, get_db
from ..auth.identity import Actor, get_current_actor, require_roles
from ..schemas.schemas import UnitCreate, UnitUpdate
from ..services import units as unit_service

router = APIRouter()


@router.get("/")
def list_units(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    is_vacant: Optional[bool] = None,
    building: Optional[str] = None,
    limit: int = Query(default=200, ge=1, le=1000),
    order_by: str = "unit_number",
    order_direction: str = "asc",
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    options: Dict[str, Any] = {"limit": limit, "order_by": order_by, "order_direction": order_direction}
    if status_filter:
        options["status"] = status_filter
    if is_vacant is not None:
        options["is_vacant"] = is_vacant
    if building:
        options["building"] = building
    return envelope(unit_service.get_units(db, options))


@router.get("/vacant")
def list_vacant_units(limit: int = Query(default=50, ge=1, le=1000), db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(unit_service.get_vacant_units(db, limit=limit))


@router.get("/statistics")
def unit_statistics(db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(unit_service.get_units_statistics(db))


@router.get("/by-number/{unit_number}")
def get_unit_by_number(unit_number: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(unit_service.get_unit_by_number(db, unit_number))


@router.get("/by-status/{unit_status}")
def list_units_by_status(unit_status: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(unit_service.get_units_by_status(db, unit_status))


@router.get("/{unit_id}")
def get_unit(unit_id: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(unit_service.get_unit_by_id(db, unit_id))


@router.post("/")
def create_unit(payload: UnitCreate, db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(unit_service.create_unit(db, payload), success_status=status.HTTP_201_CREATED)


@router.post("/bulk")
def create_units(
    payload: List[UnitCreate] = Body(...),
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(unit_service.create_bulk_units(db, payload), success_status=status.HTTP_201_CREATED)


@router.patch("/{unit_id}")
def update_unit(
    unit_id: str,
    payload: UnitUpdate,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(unit_service.update_unit(db, unit_id, payload))


@router.post("/{unit_id}/vacant")
def mark_vacant(unit_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(unit_service.mark_unit_vacant(db, unit_id))


@router.post("/{unit_id}/occupied")
def mark_occupied(unit_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(unit_service.mark_unit_occupied(db, unit_id))


@router.delete("/{unit_id}")
def delete_unit(unit_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles("Admin"))):
    return envelope(unit_service.delete_unit(db, unit_id))


@router.post("/maintenance/vacancy")
def refresh_vacancy(db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(unit_service.update_all_vacant_unit_days(db))
