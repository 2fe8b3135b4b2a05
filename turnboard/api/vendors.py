from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from ..api.dependencies import MANAGER_ROLES, envelope, get_db
from ..auth.identity import Actor, get_current_actor, require_roles
from ..schemas.schemas import RatingPayload, VendorCreate, VendorUpdate
from ..services import vendors as vendor_service

router = APIRouter()


@router.get("/")
def list_vendors(
    category: Optional[str] = None,
    active: Optional[bool] = None,
    preferred_vendor: Optional[bool] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    order_by: str = "vendor_name",
    order_direction: str = "asc",
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    options: Dict[str, Any] = {"limit": limit, "order_by": order_by, "order_direction": order_direction}
    if category:
        options["category"] = category
    if active is not None:
        options["active"] = active
    if preferred_vendor is not None:
        options["preferred_vendor"] = preferred_vendor
    return envelope(vendor_service.get_vendors(db, options))


@router.get("/active")
def list_active_vendors(db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(vendor_service.get_active_vendors(db))


@router.get("/preferred")
def list_preferred_vendors(db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(vendor_service.get_preferred_vendors(db))


@router.get("/categories")
def list_vendor_categories(db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(vendor_service.get_vendor_categories(db))


@router.get("/statistics")
def vendor_statistics(db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(vendor_service.get_vendor_statistics(db))


@router.get("/search")
def search_vendors(q: str = Query(..., min_length=1), db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(vendor_service.search_vendors(db, q))


@router.get("/by-category/{category}")
def list_vendors_by_category(
    category: str,
    active_only: bool = True,
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    return envelope(vendor_service.get_vendors_by_category(db, category, active_only=active_only))


@router.get("/{vendor_id}")
def get_vendor(vendor_id: str, db: Session = Depends(get_db), _: Actor = Depends(get_current_actor)):
    return envelope(vendor_service.get_vendor_by_id(db, vendor_id))


@router.post("/")
def create_vendor(payload: VendorCreate, db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(vendor_service.create_vendor(db, payload), success_status=status.HTTP_201_CREATED)


@router.post("/bulk")
def create_vendors(
    payload: List[VendorCreate] = Body(...),
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(vendor_service.create_bulk_vendors(db, payload), success_status=status.HTTP_201_CREATED)


@router.patch("/{vendor_id}")
def update_vendor(
    vendor_id: str,
    payload: VendorUpdate,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(vendor_service.update_vendor(db, vendor_id, payload))


@router.post("/{vendor_id}/preferred")
def mark_preferred(
    vendor_id: str,
    preferred: bool = True,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(vendor_service.mark_vendor_preferred(db, vendor_id, preferred))


@router.post("/{vendor_id}/deactivate")
def deactivate_vendor(vendor_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(vendor_service.deactivate_vendor(db, vendor_id))


@router.post("/{vendor_id}/reactivate")
def reactivate_vendor(vendor_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(vendor_service.reactivate_vendor(db, vendor_id))


@router.post("/{vendor_id}/jobs")
def record_job(vendor_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles(*MANAGER_ROLES))):
    return envelope(vendor_service.record_vendor_job_completion(db, vendor_id))


@router.put("/{vendor_id}/rating")
def rate_vendor(
    vendor_id: str,
    payload: RatingPayload,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_roles(*MANAGER_ROLES)),
):
    return envelope(vendor_service.update_vendor_rating(db, vendor_id, payload.rating))


@router.delete("/{vendor_id}")
def delete_vendor(vendor_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_roles("Admin"))):
    return envelope(vendor_service.delete_vendor(db, vendor_id))
