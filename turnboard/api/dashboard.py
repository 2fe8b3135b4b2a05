from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import envelope, get_db
from ..auth.identity import Actor, get_current_actor
from ..services import dashboard as dashboard_service

router = APIRouter()


@router.get("/summary")
def dashboard_summary(
    upcoming_limit: int = Query(default=5, ge=1, le=50),
    activity_limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    return envelope(
        dashboard_service.get_dashboard_summary(db, upcoming_limit=upcoming_limit, activity_limit=activity_limit)
    )
