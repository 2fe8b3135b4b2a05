"""Turn workflow engine.

Every transition writes the turn and its owning unit in one transaction and
then appends the matching activity record best-effort. A unit carries at
most one open turn (In Progress or Blocked); the ``open_unit_id`` marker on
the turn row backs that with a unique constraint.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..constants import (
    OPEN_TURN_STATUSES,
    TERMINAL_TURN_STATUSES,
    ActivityActionType,
    EntityType,
    TurnStatus,
    UnitStatus,
)
from ..core import clock
from ..core.errors import (
    InvalidStateError,
    NotFoundError,
    TaskNotFoundError,
    TurnAlreadyOpenError,
    service_operation,
)
from ..core.metrics import calculate_days_in_progress, calculate_days_overdue, calculate_progress
from ..models.models import Turn, Unit, User, generate_id
from ..schemas.schemas import (
    ChecklistTask,
    TaskUpdate,
    TurnCreate,
    TurnQuery,
    TurnRead,
    TurnUpdate,
    parse_payload,
)
from .activity import record_activity
from .units import has_open_turn, link_turn, load_unit, release_turn

logger = logging.getLogger(__name__)


def serialize_turn(turn: Turn) -> Dict[str, Any]:
    return TurnRead.model_validate(turn).model_dump()


def load_turn(session: Session, turn_id: str) -> Turn:
    turn = session.get(Turn, turn_id)
    if not turn:
        raise NotFoundError("Turn not found")
    return turn


def _ensure_open(turn: Turn, verb: str) -> None:
    if turn.status in TERMINAL_TURN_STATUSES:
        raise InvalidStateError(f"Cannot {verb} a turn that is {turn.status}")


STAMP_FIELDS = ("completed_at", "completed_by", "completed_by_name")


def _stamp_checklist(
    tasks: List[ChecklistTask],
    stored: List[Dict[str, Any]],
    actor,
    now: datetime,
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Dump caller tasks with completion stamps the caller cannot set.

    A task keeps the stamp already stored under its ``task_id``. A completed
    task without one is stamped for ``actor`` and returned in the second list
    so the caller can log ``task.completed`` after committing.
    """
    stamps = {task.get("task_id"): task for task in stored}
    checklist, newly_completed = [], []
    for task in tasks:
        data = task.model_dump(mode="json", exclude=set(STAMP_FIELDS))
        previous = stamps.get(task.task_id) or {}
        if previous.get("completed_at"):
            data.update({field: previous.get(field) for field in STAMP_FIELDS})
        elif task.completed:
            data.update(completed_at=now, completed_by=actor.user_id, completed_by_name=actor.user_name)
            newly_completed.append(data)
        checklist.append(ChecklistTask.model_validate(data).model_dump(mode="json"))
    return checklist, newly_completed


def _log_task_completed(session: Session, actor, turn: Turn, task: Dict[str, Any]) -> None:
    record_activity(
        session,
        actor,
        f"Completed task: {task['task_name']}",
        ActivityActionType.TASK_COMPLETED.value,
        EntityType.TURN.value,
        turn.id,
        entity_name=f"Unit {turn.unit_number}",
        metadata={"task_id": task["task_id"], "task_name": task["task_name"]},
    )


def _apply_checklist(turn: Turn, checklist: List[Dict[str, Any]]) -> None:
    """Store a checklist and the three progress fields derived from it."""
    turn.checklist = sorted(checklist, key=lambda task: task.get("order", 0))
    progress = calculate_progress(turn.checklist)
    turn.total_tasks = progress["total_tasks"]
    turn.completed_tasks = progress["completed_tasks"]
    turn.progress_percentage = progress["progress_percentage"]


def _refresh_dates(turn: Turn, now: datetime) -> None:
    turn.days_in_progress = calculate_days_in_progress(turn.start_date, now)
    turn.days_overdue = calculate_days_overdue(turn.target_completion_date, now)


def _owning_unit(session: Session, turn: Turn) -> Optional[Unit]:
    unit = session.get(Unit, turn.unit_id)
    if unit is None:
        logger.warning("Turn %s references missing unit %s", turn.id, turn.unit_id)
    return unit


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@service_operation("create turn")
def create_turn(session: Session, payload: Any, actor) -> Dict[str, Any]:
    payload = parse_payload(TurnCreate, payload)
    unit = load_unit(session, payload.unit_id)
    if has_open_turn(session, unit.id):
        raise TurnAlreadyOpenError(f"Unit {unit.unit_number} already has an open turn")
    if unit.current_turn_id:
        logger.warning("Unit %s links closed turn %s; relinking", unit.id, unit.current_turn_id)

    now = clock.utcnow()
    turn = Turn(
        id=generate_id(),
        unit_id=unit.id,
        unit_number=payload.unit_number or unit.unit_number,
        open_unit_id=unit.id,
        status=TurnStatus.IN_PROGRESS.value,
        start_date=payload.start_date or now,
        target_completion_date=payload.target_completion_date,
        assigned_technician_id=payload.assigned_technician_id,
        assigned_technician_name=payload.assigned_technician_name,
        priority=payload.priority,
        notes=payload.notes,
        days_in_progress=0,
        days_overdue=0,
    )
    checklist, completed_tasks = _stamp_checklist(payload.checklist, [], actor, now)
    _apply_checklist(turn, checklist)
    session.add(turn)
    link_turn(unit, turn.id, now)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise TurnAlreadyOpenError(f"Unit {payload.unit_id} already has an open turn")

    logger.info("Opened turn %s for unit %s", turn.id, turn.unit_number)
    record_activity(
        session,
        actor,
        f"Created turn for unit {turn.unit_number}",
        ActivityActionType.TURN_CREATED.value,
        EntityType.TURN.value,
        turn.id,
        entity_name=f"Unit {turn.unit_number}",
        metadata={"unit_id": turn.unit_id, "total_tasks": turn.total_tasks},
    )
    for task in completed_tasks:
        _log_task_completed(session, actor, turn, task)
    return serialize_turn(turn)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@service_operation("get turn")
def get_turn_by_id(session: Session, turn_id: str) -> Dict[str, Any]:
    return serialize_turn(load_turn(session, turn_id))


@service_operation("get turns", many=True)
def get_turns(session: Session, options: Any = None) -> List[Dict[str, Any]]:
    options = parse_payload(TurnQuery, options)
    query = session.query(Turn)
    if options.status:
        query = query.filter(Turn.status == options.status)
    if options.assigned_technician_id:
        query = query.filter(Turn.assigned_technician_id == options.assigned_technician_id)
    if options.unit_id:
        query = query.filter(Turn.unit_id == options.unit_id)
    column = getattr(Turn, options.order_by)
    query = query.order_by(column.desc() if options.order_direction == "desc" else column.asc())
    return [serialize_turn(turn) for turn in query.limit(options.limit).all()]


def get_active_turns(session: Session, limit: int = 10):
    return get_turns(session, {"status": TurnStatus.IN_PROGRESS.value, "limit": limit})


def get_turns_by_technician(session: Session, technician_id: str):
    return get_turns(session, {"assigned_technician_id": technician_id})


@service_operation("get turns by unit", many=True)
def get_turns_by_unit(session: Session, unit_id: str) -> List[Dict[str, Any]]:
    turns = session.query(Turn).filter(Turn.unit_id == unit_id).order_by(Turn.created_at.desc()).all()
    return [serialize_turn(turn) for turn in turns]


@service_operation("get overdue turns", many=True)
def get_overdue_turns(session: Session) -> List[Dict[str, Any]]:
    now = clock.utcnow()
    turns = (
        session.query(Turn)
        .filter(Turn.status.in_(OPEN_TURN_STATUSES), Turn.target_completion_date < now)
        .order_by(Turn.target_completion_date.asc())
        .all()
    )
    return [serialize_turn(turn) for turn in turns]


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


@service_operation("update turn")
def update_turn(session: Session, turn_id: str, changes: Any, actor) -> Dict[str, Any]:
    """Apply manager edits to a turn.

    A replacement checklist keeps the completion stamps already stored for
    its tasks; tasks it newly marks completed are stamped for ``actor``.
    """
    changes = parse_payload(TurnUpdate, changes)
    turn = load_turn(session, turn_id)
    updates = changes.model_dump(exclude_unset=True, exclude={"checklist"})

    completed_tasks = []
    if changes.checklist is not None:
        _ensure_open(turn, "change the checklist of")
        checklist, completed_tasks = _stamp_checklist(changes.checklist, turn.checklist or [], actor, clock.utcnow())
        _apply_checklist(turn, checklist)
    for field, value in updates.items():
        setattr(turn, field, value)
    if turn.status in OPEN_TURN_STATUSES:
        _refresh_dates(turn, clock.utcnow())
    session.commit()

    for task in completed_tasks:
        _log_task_completed(session, actor, turn, task)
    return serialize_turn(turn)


@service_operation("update task")
def update_task(session: Session, turn_id: str, task_id: str, task_updates: Any, actor) -> Dict[str, Any]:
    """Merge ``task_updates`` into one checklist task.

    The first transition to completed stamps ``completed_at``/``completed_by``
    and logs ``task.completed``; later updates never touch the stamp.
    """
    updates = parse_payload(TaskUpdate, task_updates).model_dump(exclude_unset=True)
    turn = load_turn(session, turn_id)
    _ensure_open(turn, "update tasks on")

    checklist = [dict(task) for task in turn.checklist or []]
    index = next((i for i, task in enumerate(checklist) if task.get("task_id") == task_id), None)
    if index is None:
        raise TaskNotFoundError(f"Task {task_id} not found on turn {turn_id}")

    task = checklist[index]
    task.update(updates)
    newly_completed = updates.get("completed") is True and not task.get("completed_at")
    if newly_completed:
        task["completed_at"] = clock.utcnow()
        task["completed_by"] = actor.user_id
        task["completed_by_name"] = actor.user_name
    checklist[index] = ChecklistTask.model_validate(task).model_dump(mode="json")

    _apply_checklist(turn, checklist)
    _refresh_dates(turn, clock.utcnow())
    session.commit()

    if newly_completed:
        _log_task_completed(session, actor, turn, checklist[index])
    return serialize_turn(turn)


def _record_technician_completion(session: Session, turn: Turn, now: datetime) -> None:
    if not turn.assigned_technician_id:
        return
    technician = session.get(User, turn.assigned_technician_id)
    if technician is None:
        return
    elapsed_days = abs((clock.ensure_utc(now) - clock.ensure_utc(turn.start_date)).total_seconds()) / 86400
    completed = technician.total_turns_completed or 0
    average = technician.avg_turn_completion_time or 0
    technician.avg_turn_completion_time = round((average * completed + elapsed_days) / (completed + 1), 1)
    technician.total_turns_completed = completed + 1


@service_operation("complete turn")
def complete_turn(session: Session, turn_id: str, actor) -> Dict[str, Any]:
    turn = load_turn(session, turn_id)
    _ensure_open(turn, "complete")
    now = clock.utcnow()

    turn.status = TurnStatus.COMPLETED.value
    turn.actual_completion_date = now
    turn.open_unit_id = None
    turn.blockage_reason = None
    _refresh_dates(turn, now)

    unit = _owning_unit(session, turn)
    if unit is not None:
        release_turn(unit, turn.id, completed_at=now)
    _record_technician_completion(session, turn, now)
    session.commit()

    logger.info("Completed turn %s for unit %s", turn.id, turn.unit_number)
    record_activity(
        session,
        actor,
        f"Completed turn for unit {turn.unit_number}",
        ActivityActionType.TURN_COMPLETED.value,
        EntityType.TURN.value,
        turn.id,
        entity_name=f"Unit {turn.unit_number}",
        metadata={"unit_id": turn.unit_id, "days_in_progress": turn.days_in_progress},
    )
    return serialize_turn(turn)


@service_operation("block turn")
def block_turn(session: Session, turn_id: str, reason: str, actor) -> Dict[str, Any]:
    turn = load_turn(session, turn_id)
    _ensure_open(turn, "block")
    turn.status = TurnStatus.BLOCKED.value
    turn.blockage_reason = reason
    _refresh_dates(turn, clock.utcnow())

    unit = _owning_unit(session, turn)
    if unit is not None:
        unit.status = UnitStatus.BLOCKED.value
    session.commit()

    record_activity(
        session,
        actor,
        f"Blocked turn for unit {turn.unit_number}: {reason}",
        ActivityActionType.TURN_BLOCKED.value,
        EntityType.TURN.value,
        turn.id,
        entity_name=f"Unit {turn.unit_number}",
        metadata={"reason": reason},
    )
    return serialize_turn(turn)


@service_operation("resume turn")
def resume_turn(session: Session, turn_id: str, actor) -> Dict[str, Any]:
    turn = load_turn(session, turn_id)
    if turn.status != TurnStatus.BLOCKED.value:
        raise InvalidStateError(f"Cannot resume a turn that is {turn.status}")
    turn.status = TurnStatus.IN_PROGRESS.value
    turn.blockage_reason = None
    _refresh_dates(turn, clock.utcnow())

    unit = _owning_unit(session, turn)
    if unit is not None:
        unit.status = UnitStatus.IN_PROGRESS.value
    session.commit()

    record_activity(
        session,
        actor,
        f"Resumed turn for unit {turn.unit_number}",
        ActivityActionType.TURN_RESUMED.value,
        EntityType.TURN.value,
        turn.id,
        entity_name=f"Unit {turn.unit_number}",
    )
    return serialize_turn(turn)


@service_operation("cancel turn")
def cancel_turn(session: Session, turn_id: str, reason: str, actor) -> Dict[str, Any]:
    turn = load_turn(session, turn_id)
    _ensure_open(turn, "cancel")
    turn.status = TurnStatus.CANCELLED.value
    turn.open_unit_id = None
    turn.notes = "\n".join(filter(None, [turn.notes, f"Cancelled: {reason}"]))

    unit = _owning_unit(session, turn)
    if unit is not None:
        release_turn(unit, turn.id)
    session.commit()

    record_activity(
        session,
        actor,
        f"Cancelled turn for unit {turn.unit_number}: {reason}",
        ActivityActionType.TURN_CANCELLED.value,
        EntityType.TURN.value,
        turn.id,
        entity_name=f"Unit {turn.unit_number}",
        metadata={"reason": reason},
    )
    return serialize_turn(turn)


# ---------------------------------------------------------------------------
# Delete and maintenance
# ---------------------------------------------------------------------------


@service_operation("delete turn")
def delete_turn(session: Session, turn_id: str) -> None:
    turn = session.get(Turn, turn_id)
    if turn is None:
        return None
    unit = session.get(Unit, turn.unit_id)
    if unit is not None and unit.current_turn_id == turn.id:
        unit.current_turn_id = None
        unit.status = UnitStatus.READY.value
    session.delete(turn)
    session.commit()
    logger.info("Deleted turn %s", turn_id)
    return None


@service_operation("recalculate turn progress")
def recalculate_all_progress(session: Session) -> Dict[str, int]:
    now = clock.utcnow()
    turns = session.query(Turn).filter(Turn.status.in_(OPEN_TURN_STATUSES)).all()
    for turn in turns:
        _apply_checklist(turn, [dict(task) for task in turn.checklist or []])
        _refresh_dates(turn, now)
    session.commit()
    logger.info("Recalculated progress for %d open turns", len(turns))
    return {"updated_count": len(turns)}


def _open_turns_by_unit(session: Session) -> Dict[str, Turn]:
    turns = session.query(Turn).filter(Turn.status.in_(OPEN_TURN_STATUSES)).all()
    return {turn.unit_id: turn for turn in turns}


@service_operation("find unit/turn link drift", many=True)
def find_link_drift(session: Session) -> List[Dict[str, Any]]:
    """Report units whose ``current_turn_id`` disagrees with their open turn."""
    open_turns = _open_turns_by_unit(session)
    drift = []
    for unit in session.query(Unit).order_by(Unit.unit_number.asc()).all():
        open_turn = open_turns.get(unit.id)
        expected = open_turn.id if open_turn else None
        if unit.current_turn_id != expected:
            drift.append(
                {
                    "unit_id": unit.id,
                    "unit_number": unit.unit_number,
                    "current_turn_id": unit.current_turn_id,
                    "expected_turn_id": expected,
                }
            )
    return drift


@service_operation("repair unit/turn link drift")
def repair_link_drift(session: Session) -> Dict[str, Any]:
    open_turns = _open_turns_by_unit(session)
    repairs = []
    for unit in session.query(Unit).all():
        open_turn = open_turns.get(unit.id)
        expected = open_turn.id if open_turn else None
        if unit.current_turn_id == expected:
            continue
        repairs.append({"unit_id": unit.id, "from": unit.current_turn_id, "to": expected})
        if open_turn is not None:
            link_turn(unit, open_turn.id, clock.utcnow())
            if open_turn.status == TurnStatus.BLOCKED.value:
                unit.status = UnitStatus.BLOCKED.value
        else:
            unit.current_turn_id = None
            if unit.status in (UnitStatus.IN_PROGRESS.value, UnitStatus.BLOCKED.value):
                unit.status = UnitStatus.READY.value
    session.commit()
    if repairs:
        logger.warning("Repaired %d unit/turn links", len(repairs))
    return {"repaired_count": len(repairs), "repairs": repairs}
