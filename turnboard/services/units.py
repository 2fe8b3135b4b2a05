"""Unit registry: inventory records and their vacancy/status fields.

Turn linkage (``current_turn_id``) is moved only by the turn workflow engine
through :func:`link_turn` and :func:`release_turn`, inside the engine's own
transaction.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import OPEN_TURN_STATUSES, STATISTICS_SCAN_LIMIT, UnitStatus
from ..core import clock
from ..core.errors import (
    DuplicateError,
    ErrorCode,
    InvalidStateError,
    NotFoundError,
    service_operation,
    store_error_message,
)
from ..core.metrics import calculate_days_vacant
from ..models.models import Turn, Unit
from ..schemas.schemas import ServiceResult, UnitCreate, UnitQuery, UnitRead, UnitUpdate, parse_payload

logger = logging.getLogger(__name__)

VACANCY_FIELDS = ("is_vacant", "vacant_since")
TURN_OWNED_STATUSES = (UnitStatus.IN_PROGRESS.value, UnitStatus.BLOCKED.value)


def _ensure_status_allowed(status: str) -> None:
    if status in TURN_OWNED_STATUSES:
        raise InvalidStateError(f"Unit status {status} is set only by its open turn")


def serialize_unit(unit: Unit) -> Dict[str, Any]:
    return UnitRead.model_validate(unit).model_dump()


def load_unit(session: Session, unit_id: str) -> Unit:
    unit = session.get(Unit, unit_id)
    if not unit:
        raise NotFoundError("Unit not found")
    return unit


def refresh_days_vacant(unit: Unit, now: Optional[datetime] = None) -> bool:
    """Recompute ``days_vacant`` in place; returns True when it changed."""
    days = calculate_days_vacant(unit.is_vacant, unit.vacant_since, now or clock.utcnow())
    if unit.days_vacant != days:
        unit.days_vacant = days
        return True
    return False


def has_open_turn(session: Session, unit_id: str) -> bool:
    return (
        session.query(Turn.id)
        .filter(Turn.unit_id == unit_id, Turn.status.in_(OPEN_TURN_STATUSES))
        .first()
        is not None
    )


def link_turn(unit: Unit, turn_id: str, now: datetime) -> None:
    """Point ``unit`` at a newly opened turn."""
    unit.current_turn_id = turn_id
    unit.status = UnitStatus.IN_PROGRESS.value
    if not unit.is_vacant:
        unit.is_vacant = True
        unit.vacant_since = unit.vacant_since or now
    refresh_days_vacant(unit, now)


def release_turn(unit: Unit, turn_id: str, *, completed_at: Optional[datetime] = None) -> None:
    """Detach ``unit`` from ``turn_id`` and return it to Ready.

    A unit that already points at a different turn is left alone.
    """
    if unit.current_turn_id not in (None, turn_id):
        logger.warning("Unit %s links turn %s, not %s; leaving link untouched", unit.id, unit.current_turn_id, turn_id)
        return
    unit.current_turn_id = None
    unit.status = UnitStatus.READY.value
    if completed_at is not None:
        unit.last_turn_completed_date = completed_at


def _ensure_unique_number(session: Session, unit_number: str, exclude_id: Optional[str] = None) -> None:
    query = session.query(Unit.id).filter(Unit.unit_number == unit_number)
    if exclude_id:
        query = query.filter(Unit.id != exclude_id)
    if query.first() is not None:
        raise DuplicateError(f"Unit number {unit_number} already exists")


def _commit_unit(session: Session, unit: Unit) -> None:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateError(f"Unit number {unit.unit_number} already exists")


def _build_unit(session: Session, payload: UnitCreate) -> Unit:
    _ensure_unique_number(session, payload.unit_number)
    _ensure_status_allowed(payload.status)
    data = payload.model_dump()
    if data["is_vacant"] and data["vacant_since"] is None:
        data["vacant_since"] = clock.utcnow()
    if not data["is_vacant"]:
        data["vacant_since"] = None
    unit = Unit(**data)
    refresh_days_vacant(unit)
    session.add(unit)
    return unit


@service_operation("create unit")
def create_unit(session: Session, payload: Any) -> Dict[str, Any]:
    payload = parse_payload(UnitCreate, payload)
    unit = _build_unit(session, payload)
    _commit_unit(session, unit)
    session.refresh(unit)
    logger.info("Created unit %s (%s)", unit.unit_number, unit.id)
    return serialize_unit(unit)


@service_operation("get unit")
def get_unit_by_id(session: Session, unit_id: str) -> Dict[str, Any]:
    """Fetch a unit, refreshing a stale ``days_vacant`` on the way."""
    unit = load_unit(session, unit_id)
    if refresh_days_vacant(unit):
        session.commit()
    return serialize_unit(unit)


@service_operation("get unit by number")
def get_unit_by_number(session: Session, unit_number: str) -> Dict[str, Any]:
    unit = session.query(Unit).filter(Unit.unit_number == unit_number).first()
    if not unit:
        raise NotFoundError("Unit not found")
    return serialize_unit(unit)


@service_operation("get units", many=True)
def get_units(session: Session, options: Any = None) -> List[Dict[str, Any]]:
    options = parse_payload(UnitQuery, options)
    query = session.query(Unit)
    if options.status:
        query = query.filter(Unit.status == options.status)
    if options.is_vacant is not None:
        query = query.filter(Unit.is_vacant.is_(options.is_vacant))
    if options.building:
        query = query.filter(Unit.building == options.building)
    column = getattr(Unit, options.order_by)
    query = query.order_by(column.desc() if options.order_direction == "desc" else column.asc())
    return [serialize_unit(unit) for unit in query.limit(options.limit).all()]


@service_operation("get vacant units", many=True)
def get_vacant_units(session: Session, limit: int = 50) -> List[Dict[str, Any]]:
    units = (
        session.query(Unit)
        .filter(Unit.is_vacant.is_(True))
        .order_by(Unit.vacant_since.asc())
        .limit(limit)
        .all()
    )
    return [serialize_unit(unit) for unit in units]


@service_operation("get units by status", many=True)
def get_units_by_status(session: Session, status: str) -> List[Dict[str, Any]]:
    status = parse_payload(UnitQuery, {"status": status}).status
    units = session.query(Unit).filter(Unit.status == status).order_by(Unit.unit_number.asc()).all()
    return [serialize_unit(unit) for unit in units]


@service_operation("get unit statistics")
def get_units_statistics(session: Session) -> Dict[str, Any]:
    units = session.query(Unit).limit(STATISTICS_SCAN_LIMIT).all()
    vacant = [unit for unit in units if unit.is_vacant]
    stats = {
        "total_units": len(units),
        "vacant_units": len(vacant),
        "occupied_units": sum(1 for unit in units if unit.status == UnitStatus.OCCUPIED.value),
        "ready_units": sum(1 for unit in units if unit.status == UnitStatus.READY.value),
        "in_progress_units": sum(1 for unit in units if unit.status == UnitStatus.IN_PROGRESS.value),
        "blocked_units": sum(1 for unit in units if unit.status == UnitStatus.BLOCKED.value),
        "avg_days_vacant": 0,
    }
    if vacant:
        stats["avg_days_vacant"] = round(sum(unit.days_vacant for unit in vacant) / len(vacant), 1)
    return stats


@service_operation("update unit")
def update_unit(session: Session, unit_id: str, changes: Any) -> Dict[str, Any]:
    """Merge ``changes`` into the unit.

    ``days_vacant`` is never taken from the caller; touching a vacancy field
    recomputes it from the merged record.
    """
    if isinstance(changes, dict):
        changes = {key: value for key, value in changes.items() if key != "days_vacant"}
    changes = parse_payload(UnitUpdate, changes)
    unit = load_unit(session, unit_id)
    updates = changes.model_dump(exclude_unset=True)

    open_turn = has_open_turn(session, unit.id)
    if updates.get("is_vacant") is False and open_turn:
        raise InvalidStateError("Unit has an open turn and must stay vacant")
    if "status" in updates and updates["status"] != unit.status:
        if open_turn:
            raise InvalidStateError("Unit has an open turn; its status follows the turn")
        _ensure_status_allowed(updates["status"])
    if updates.get("unit_number") and updates["unit_number"] != unit.unit_number:
        _ensure_unique_number(session, updates["unit_number"], exclude_id=unit.id)
    for field, value in updates.items():
        setattr(unit, field, value)
    if any(field in updates for field in VACANCY_FIELDS):
        if not unit.is_vacant:
            unit.vacant_since = None
        elif unit.vacant_since is None:
            unit.vacant_since = clock.utcnow()
        refresh_days_vacant(unit)
    _commit_unit(session, unit)
    return serialize_unit(unit)


@service_operation("mark unit vacant")
def mark_unit_vacant(session: Session, unit_id: str) -> Dict[str, Any]:
    unit = load_unit(session, unit_id)
    if has_open_turn(session, unit.id):
        raise InvalidStateError("Unit has an open turn; finish or cancel it first")
    unit.is_vacant = True
    unit.vacant_since = clock.utcnow()
    unit.days_vacant = 0
    unit.status = UnitStatus.READY.value
    unit.current_turn_id = None
    session.commit()
    return serialize_unit(unit)


@service_operation("mark unit occupied")
def mark_unit_occupied(session: Session, unit_id: str) -> Dict[str, Any]:
    unit = load_unit(session, unit_id)
    if has_open_turn(session, unit.id):
        raise InvalidStateError("Unit has an open turn; finish or cancel it first")
    unit.is_vacant = False
    unit.vacant_since = None
    unit.days_vacant = 0
    unit.status = UnitStatus.OCCUPIED.value
    unit.current_turn_id = None
    session.commit()
    return serialize_unit(unit)


@service_operation("delete unit")
def delete_unit(session: Session, unit_id: str) -> None:
    unit = load_unit(session, unit_id)
    if has_open_turn(session, unit.id):
        raise InvalidStateError("Unit has an open turn; finish or cancel it first")
    session.delete(unit)
    session.commit()
    logger.info("Deleted unit %s", unit_id)
    return None


def create_bulk_units(session: Session, units: List[Any]) -> ServiceResult:
    """Create units one at a time, collecting per-item failures."""
    created: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for index, item in enumerate(units):
        result = create_unit(session, item)
        if result.success:
            created.append(result.data)
        else:
            unit_number = item.get("unit_number") if isinstance(item, dict) else getattr(item, "unit_number", None)
            errors.append({"index": index, "unit_number": unit_number, "error": result.error, "error_code": result.error_code})

    data = {"created": created, "errors": errors, "success_count": len(created), "failure_count": len(errors)}
    if errors:
        logger.warning("Bulk unit create finished with %d failures", len(errors))
        return ServiceResult(
            success=False,
            data=data,
            error=f"{len(errors)} of {len(units)} units failed",
            error_code=ErrorCode.PARTIAL_FAILURE.value,
        )
    return ServiceResult.ok(data)


def update_all_vacant_unit_days(session: Session) -> ServiceResult:
    """Refresh ``days_vacant`` for every vacant unit."""
    try:
        units = session.query(Unit).filter(Unit.is_vacant.is_(True)).all()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Error loading vacant units")
        return ServiceResult.fail(store_error_message(exc), ErrorCode.STORE_ERROR.value)

    now = clock.utcnow()
    updated = 0
    errors: List[Dict[str, Any]] = []
    for unit in units:
        unit_id = unit.id
        try:
            if refresh_days_vacant(unit, now):
                session.commit()
                updated += 1
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("Could not refresh days vacant for unit %s: %s", unit_id, exc)
            errors.append({"unit_id": unit_id, "error": store_error_message(exc)})

    data = {"updated_count": updated, "failure_count": len(errors), "errors": errors}
    if errors:
        return ServiceResult(
            success=False,
            data=data,
            error=f"{len(errors)} units could not be refreshed",
            error_code=ErrorCode.PARTIAL_FAILURE.value,
        )
    return ServiceResult.ok(data)
