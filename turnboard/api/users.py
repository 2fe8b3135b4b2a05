from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..api.dependencies import MANAGER_ROLES, envelope, get_db
from ..auth.identity import Actor, get_current_actor, require_roles
from ..schemas.schemas import NotificationSettings, RolePayload, UserProfileCreate, UserProfileUpdate
from ..services import users as user_service

router = APIRouter()


def _ensure_self_or_manager(actor: Actor, uid: str) -> None:
    if actor.user_id != uid and not actor.has_any_role(*MANAGER_ROLES):
        raise HTTPException(status_code=403, detail="Operation not permitted for your role")


@router.get("/")
def list_users(
    role: Optional[str] = None,
    active: Optional[bool] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    order_by: str = "display_name",
    order_direction: str = "asc",
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    options: Dict[str, Any] = {"limit": limit, "order_by": order_by, "order_direction": order_direction}
    if role:
        options["role"] = role
    if active is not None:
        options["active"] = active
    return envelope(user_service.get_users(db, options))


@router.get("/active")
def list_active_users(db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(user_service.get_active_users(db))


@router.get("/technicians")
def list_technicians(db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(user_service.get_technicians(db))


@router.get("/statistics")
def user_statistics(db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(user_service.get_user_statistics(db))


@router.get("/search")
def search_users(q: str = Query(..., min_length=1), db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(user_service.search_users(db, q))


@router.get("/by-role/{role}")
def list_users_by_role(role: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(user_service.get_users_by_role(db, role))


@router.post("/me/login")
def record_login(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return envelope(user_service.update_last_login(db, actor.user_id))


@router.get("/{uid}")
def get_user(uid: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(user_service.get_user_profile(db, uid))


@router.get("/{uid}/permissions/{permission}")
def check_permission(uid: str, permission: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(user_service.check_user_permission(db, uid, permission))


@router.put("/{uid}")
def create_user(
    uid: str,
    payload: UserProfileCreate,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles("Admin")),
):
    return envelope(user_service.create_user_profile(db, uid, payload), success_status=status.HTTP_201_CREATED)


@router.patch("/{uid}")
def update_user(
    uid: str,
    payload: UserProfileUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    _ensure_self_or_manager(actor, uid)
    return envelope(user_service.update_user_profile(db, uid, payload))


@router.patch("/{uid}/notifications")
def update_notifications(
    uid: str,
    payload: NotificationSettings,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    _ensure_self_or_manager(actor, uid)
    return envelope(user_service.update_notification_settings(db, uid, payload))


@router.put("/{uid}/role")
def change_role(uid: str, payload: RolePayload, db: Session = Depends(get_db), _: Actor = Depends(require_roles("Admin"))):
    return envelope(user_service.update_user_role(db, uid, payload.role))


@router.post("/{uid}/deactivate")
def deactivate_user(uid: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles("Admin"))):
    return envelope(user_service.deactivate_user(db, uid))


@router.post("/{uid}/reactivate")
def reactivate_user(uid: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles("Admin"))):
    return envelope(user_service.reactivate_user(db, uid))


@router.delete("/{uid}")
def delete_user(uid: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles("Admin"))):
    return envelope(user_service.delete_user_profile(db, uid))
