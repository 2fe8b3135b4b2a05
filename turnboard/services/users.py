"""Profiles for identity-provider accounts.

Profiles are keyed by the provider's subject id; nothing here authenticates.
"""

import logging
from collections import Counter
from typing import Any, Dict, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..constants import DEFAULT_ROLE_PERMISSIONS, STATISTICS_SCAN_LIMIT, VALID_ROLES, UserRole
from ..core import clock
from ..core.errors import DuplicateError, ErrorCode, NotFoundError, ServiceError, service_operation
from ..models.models import User
from ..schemas.schemas import (
    NotificationSettings,
    ServiceResult,
    UserProfileCreate,
    UserProfileUpdate,
    UserQuery,
    UserRead,
    parse_payload,
)

logger = logging.getLogger(__name__)


def serialize_user(user: User) -> Dict[str, Any]:
    return UserRead.model_validate(user).model_dump()


def load_user(session: Session, uid: str) -> User:
    user = session.get(User, uid)
    if not user:
        raise NotFoundError("User not found")
    return user


@service_operation("create user profile")
def create_user_profile(session: Session, uid: str, data: Any) -> Dict[str, Any]:
    payload = parse_payload(UserProfileCreate, data)
    if session.get(User, uid) is not None:
        raise DuplicateError(f"User profile {uid} already exists")

    values = payload.model_dump(exclude={"permissions", "notification_settings"})
    permissions = payload.permissions
    if permissions is None:
        permissions = list(DEFAULT_ROLE_PERMISSIONS.get(payload.role, []))
    settings = payload.notification_settings or NotificationSettings()
    user = User(id=uid, permissions=permissions, notification_settings=settings.model_dump(), **values)
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Created profile for %s with role %s", uid, user.role)
    return serialize_user(user)


@service_operation("get user profile")
def get_user_profile(session: Session, uid: str) -> Dict[str, Any]:
    return serialize_user(load_user(session, uid))


@service_operation("get users", many=True)
def get_users(session: Session, options: Any = None) -> List[Dict[str, Any]]:
    options = parse_payload(UserQuery, options)
    query = session.query(User)
    if options.role:
        query = query.filter(User.role == options.role)
    if options.active is not None:
        query = query.filter(User.active.is_(options.active))
    column = getattr(User, options.order_by)
    query = query.order_by(column.desc() if options.order_direction == "desc" else column.asc())
    return [serialize_user(user) for user in query.limit(options.limit).all()]


def get_active_users(session: Session) -> ServiceResult:
    return get_users(session, {"active": True})


def get_users_by_role(session: Session, role: str) -> ServiceResult:
    return get_users(session, {"role": role, "active": True})


def get_technicians(session: Session) -> ServiceResult:
    return get_users_by_role(session, UserRole.TECHNICIAN.value)


@service_operation("search users", many=True)
def search_users(session: Session, term: str) -> List[Dict[str, Any]]:
    pattern = f"%{(term or '').lower()}%"
    users = (
        session.query(User)
        .filter(User.active.is_(True))
        .filter(or_(func.lower(User.display_name).like(pattern), func.lower(User.email).like(pattern)))
        .order_by(User.display_name.asc())
        .all()
    )
    return [serialize_user(user) for user in users]


@service_operation("update user profile")
def update_user_profile(session: Session, uid: str, changes: Any) -> Dict[str, Any]:
    changes = parse_payload(UserProfileUpdate, changes)
    user = load_user(session, uid)
    for field, value in changes.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    session.commit()
    return serialize_user(user)


@service_operation("update last login")
def update_last_login(session: Session, uid: str) -> Dict[str, Any]:
    user = load_user(session, uid)
    user.last_login_at = clock.utcnow()
    session.commit()
    return serialize_user(user)


@service_operation("update notification settings")
def update_notification_settings(session: Session, uid: str, settings: Any) -> Dict[str, Any]:
    user = load_user(session, uid)
    merged = dict(user.notification_settings or {})
    merged.update(settings.model_dump(exclude_unset=True) if isinstance(settings, NotificationSettings) else dict(settings or {}))
    user.notification_settings = NotificationSettings.model_validate(merged).model_dump()
    session.commit()
    return serialize_user(user)


@service_operation("update user stats")
def update_user_stats(session: Session, uid: str, turns_completed: int, avg_completion_time: float) -> Dict[str, Any]:
    user = load_user(session, uid)
    user.total_turns_completed = turns_completed
    user.avg_turn_completion_time = round(avg_completion_time, 1)
    session.commit()
    return serialize_user(user)


def _set_active(session: Session, uid: str, active: bool) -> Dict[str, Any]:
    user = load_user(session, uid)
    user.active = active
    session.commit()
    return serialize_user(user)


@service_operation("deactivate user")
def deactivate_user(session: Session, uid: str) -> Dict[str, Any]:
    return _set_active(session, uid, False)


@service_operation("reactivate user")
def reactivate_user(session: Session, uid: str) -> Dict[str, Any]:
    return _set_active(session, uid, True)


@service_operation("update user role")
def update_user_role(session: Session, uid: str, role: str) -> Dict[str, Any]:
    if role not in VALID_ROLES:
        raise ServiceError(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}", ErrorCode.INVALID_ROLE)
    user = load_user(session, uid)
    user.role = role
    session.commit()
    logger.info("Changed role of %s to %s", uid, role)
    return serialize_user(user)


@service_operation("delete user profile")
def delete_user_profile(session: Session, uid: str) -> None:
    user = load_user(session, uid)
    session.delete(user)
    session.commit()
    return None


@service_operation("check user permission")
def check_user_permission(session: Session, uid: str, permission: str) -> Dict[str, bool]:
    user = load_user(session, uid)
    return {"has_permission": permission in (user.permissions or [])}


@service_operation("get user statistics")
def get_user_statistics(session: Session) -> Dict[str, Any]:
    users = session.query(User).limit(STATISTICS_SCAN_LIMIT).all()
    technicians = [user for user in users if user.role == UserRole.TECHNICIAN.value and user.active]
    technician_stats = {"total": len(technicians), "avg_turns_completed": 0, "avg_completion_time": 0}
    if technicians:
        technician_stats["avg_turns_completed"] = round(
            sum(user.total_turns_completed or 0 for user in technicians) / len(technicians), 1
        )
        technician_stats["avg_completion_time"] = round(
            sum(user.avg_turn_completion_time or 0 for user in technicians) / len(technicians), 1
        )
    active = sum(1 for user in users if user.active)
    return {
        "total_users": len(users),
        "active_users": active,
        "inactive_users": len(users) - active,
        "by_role": dict(Counter(user.role for user in users)),
        "technician_stats": technician_stats,
    }
