from typing import Generator

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..config import SessionLocal
from ..core.errors import error_status
from ..schemas.schemas import ServiceResult

MANAGER_ROLES = ("Admin", "Manager")
WORKER_ROLES = ("Admin", "Manager", "Technician")


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def envelope(result: ServiceResult, success_status: int = 200) -> JSONResponse:
    status_code = success_status if result.success else error_status(result)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(result.model_dump(by_alias=True)))
