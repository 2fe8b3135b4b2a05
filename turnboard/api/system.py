from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.identity import Actor, require_roles
from ..config import settings
from ..core.version import get_version_info

router = APIRouter()


@router.get("/health")
def health(db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        database = "unavailable"
    return {"status": "ok" if database == "ok" else "degraded", "database": database}


@router.get("/version")
def version() -> Dict[str, str]:
    return get_version_info()


@router.get("/runtime")
def runtime(_: Actor = Depends(require_roles("Admin"))) -> Dict[str, Any]:
    """Expose non-sensitive runtime settings for debugging."""
    return {
        "database_backend": settings.database_url.split(":", 1)[0],
        "jwt_algorithm": settings.jwt_algorithm,
        "cors_origins": settings.cors_allow_origins,
        "log_level": settings.log_level,
        "log_json": settings.log_json,
        "activity_retention_days": settings.activity_retention_days,
    }
