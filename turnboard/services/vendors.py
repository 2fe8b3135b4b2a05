import logging
from collections import Counter
from typing import Any, Dict, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..constants import STATISTICS_SCAN_LIMIT
from ..core import clock
from ..core.errors import ErrorCode, NotFoundError, ServiceError, service_operation
from ..models.models import Vendor
from ..schemas.schemas import ServiceResult, VendorCreate, VendorQuery, VendorRead, VendorUpdate, parse_payload

logger = logging.getLogger(__name__)

SEARCH_SCAN_LIMIT = 500


def serialize_vendor(vendor: Vendor) -> Dict[str, Any]:
    return VendorRead.model_validate(vendor).model_dump()


def load_vendor(session: Session, vendor_id: str) -> Vendor:
    vendor = session.get(Vendor, vendor_id)
    if not vendor:
        raise NotFoundError("Vendor not found")
    return vendor


@service_operation("create vendor")
def create_vendor(session: Session, payload: Any) -> Dict[str, Any]:
    payload = parse_payload(VendorCreate, payload)
    vendor = Vendor(**payload.model_dump())
    session.add(vendor)
    session.commit()
    session.refresh(vendor)
    logger.info("Created vendor %s (%s)", vendor.vendor_name, vendor.id)
    return serialize_vendor(vendor)


@service_operation("get vendor")
def get_vendor_by_id(session: Session, vendor_id: str) -> Dict[str, Any]:
    return serialize_vendor(load_vendor(session, vendor_id))


@service_operation("get vendors", many=True)
def get_vendors(session: Session, options: Any = None) -> List[Dict[str, Any]]:
    options = parse_payload(VendorQuery, options)
    query = session.query(Vendor)
    if options.category:
        query = query.filter(Vendor.category == options.category)
    if options.active is not None:
        query = query.filter(Vendor.active.is_(options.active))
    if options.preferred_vendor is not None:
        query = query.filter(Vendor.preferred_vendor.is_(options.preferred_vendor))
    column = getattr(Vendor, options.order_by)
    query = query.order_by(column.desc() if options.order_direction == "desc" else column.asc())
    return [serialize_vendor(vendor) for vendor in query.limit(options.limit).all()]


def get_active_vendors(session: Session, limit: int = 100) -> ServiceResult:
    return get_vendors(session, {"active": True, "limit": limit})


def get_vendors_by_category(session: Session, category: str, active_only: bool = True) -> ServiceResult:
    options: Dict[str, Any] = {"category": category}
    if active_only:
        options["active"] = True
    return get_vendors(session, options)


def get_preferred_vendors(session: Session) -> ServiceResult:
    return get_vendors(session, {"active": True, "preferred_vendor": True, "order_by": "rating", "order_direction": "desc"})


@service_operation("search vendors", many=True)
def search_vendors(session: Session, term: str) -> List[Dict[str, Any]]:
    pattern = f"%{(term or '').lower()}%"
    vendors = (
        session.query(Vendor)
        .filter(Vendor.active.is_(True))
        .filter(
            or_(
                func.lower(Vendor.vendor_name).like(pattern),
                func.lower(func.coalesce(Vendor.contact_name, "")).like(pattern),
                func.lower(Vendor.category).like(pattern),
            )
        )
        .order_by(Vendor.vendor_name.asc())
        .limit(SEARCH_SCAN_LIMIT)
        .all()
    )
    return [serialize_vendor(vendor) for vendor in vendors]


@service_operation("get vendor categories", many=True)
def get_vendor_categories(session: Session) -> List[Dict[str, Any]]:
    rows = (
        session.query(Vendor.category, func.count(Vendor.id))
        .filter(Vendor.active.is_(True))
        .group_by(Vendor.category)
        .order_by(Vendor.category.asc())
        .all()
    )
    return [{"name": category, "count": count} for category, count in rows]


@service_operation("update vendor")
def update_vendor(session: Session, vendor_id: str, changes: Any) -> Dict[str, Any]:
    changes = parse_payload(VendorUpdate, changes)
    vendor = load_vendor(session, vendor_id)
    for field, value in changes.model_dump(exclude_unset=True).items():
        setattr(vendor, field, value)
    session.commit()
    return serialize_vendor(vendor)


def mark_vendor_preferred(session: Session, vendor_id: str, preferred: bool = True) -> ServiceResult:
    return update_vendor(session, vendor_id, {"preferred_vendor": preferred})


def deactivate_vendor(session: Session, vendor_id: str) -> ServiceResult:
    return update_vendor(session, vendor_id, {"active": False})


def reactivate_vendor(session: Session, vendor_id: str) -> ServiceResult:
    return update_vendor(session, vendor_id, {"active": True})


@service_operation("record vendor job completion")
def record_vendor_job_completion(session: Session, vendor_id: str) -> Dict[str, Any]:
    vendor = load_vendor(session, vendor_id)
    vendor.total_jobs_completed = (vendor.total_jobs_completed or 0) + 1
    vendor.last_service_date = clock.utcnow()
    session.commit()
    return serialize_vendor(vendor)


@service_operation("update vendor rating")
def update_vendor_rating(session: Session, vendor_id: str, rating: float) -> Dict[str, Any]:
    if rating is None or not 1 <= rating <= 5:
        raise ServiceError("Rating must be between 1 and 5", ErrorCode.INVALID_RATING)
    vendor = load_vendor(session, vendor_id)
    vendor.rating = round(float(rating), 1)
    session.commit()
    return serialize_vendor(vendor)


@service_operation("delete vendor")
def delete_vendor(session: Session, vendor_id: str) -> None:
    vendor = load_vendor(session, vendor_id)
    session.delete(vendor)
    session.commit()
    return None


def create_bulk_vendors(session: Session, vendors: List[Any]) -> ServiceResult:
    created: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for index, item in enumerate(vendors):
        result = create_vendor(session, item)
        if result.success:
            created.append(result.data)
        else:
            name = item.get("vendor_name") if isinstance(item, dict) else getattr(item, "vendor_name", None)
            errors.append({"index": index, "vendor_name": name, "error": result.error, "error_code": result.error_code})

    data = {"created": created, "errors": errors, "success_count": len(created), "failure_count": len(errors)}
    if errors:
        logger.warning("Bulk vendor create finished with %d failures", len(errors))
        return ServiceResult(
            success=False,
            data=data,
            error=f"{len(errors)} of {len(vendors)} vendors failed",
            error_code=ErrorCode.PARTIAL_FAILURE.value,
        )
    return ServiceResult.ok(data)


@service_operation("get vendor statistics")
def get_vendor_statistics(session: Session) -> Dict[str, Any]:
    vendors = session.query(Vendor).limit(STATISTICS_SCAN_LIMIT).all()
    active = [vendor for vendor in vendors if vendor.active]
    rated = [vendor for vendor in active if vendor.rating]
    return {
        "total_vendors": len(vendors),
        "active_vendors": len(active),
        "inactive_vendors": len(vendors) - len(active),
        "preferred_vendors": sum(1 for vendor in active if vendor.preferred_vendor),
        "by_category": dict(Counter(vendor.category for vendor in active)),
        "avg_rating": round(sum(vendor.rating for vendor in rated) / len(rated), 1) if rated else 0,
        "total_jobs_completed": sum(vendor.total_jobs_completed or 0 for vendor in vendors),
    }
