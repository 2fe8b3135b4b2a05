from __future__ import annotations

import functools
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, TypeVar

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..schemas.schemas import ServiceResult
from .request_context import get_request_id

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class ErrorCode(str, Enum):
    NOT_FOUND = "not-found"
    TASK_NOT_FOUND = "task-not-found"
    INVALID_ROLE = "invalid-role"
    INVALID_RATING = "invalid-rating"
    INVALID_INPUT = "invalid-input"
    INVALID_STATE = "invalid-state"
    TURN_ALREADY_OPEN = "turn-already-open"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"
    STORE_ERROR = "store-error"
    PARTIAL_FAILURE = "partial-failure"


class ServiceError(Exception):
    code: ErrorCode = ErrorCode.STORE_ERROR

    def __init__(self, message: str, code: Optional[ErrorCode] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFoundError(ServiceError):
    code = ErrorCode.NOT_FOUND


class TaskNotFoundError(ServiceError):
    code = ErrorCode.TASK_NOT_FOUND


class InvalidStateError(ServiceError):
    code = ErrorCode.INVALID_STATE


class TurnAlreadyOpenError(ServiceError):
    code = ErrorCode.TURN_ALREADY_OPEN


class DuplicateError(ServiceError):
    code = ErrorCode.DUPLICATE


def store_error_message(exc: SQLAlchemyError) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        message = str(exc.orig)
    else:
        message = str(exc)
    if exc.code:
        return f"{message} (code {exc.code})"
    return message


def service_operation(action: str, *, many: bool = False) -> Callable[[F], F]:
    """Convert a service function's outcome into a :class:`ServiceResult`.

    The wrapped function receives the session as its first argument and
    returns the payload for ``data``. Domain errors and store errors roll the
    session back and come out as a failed envelope; list operations
    (``many=True``) still carry ``data=[]`` when they fail.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(session, *args, **kwargs):
            try:
                data = func(session, *args, **kwargs)
            except ServiceError as exc:
                session.rollback()
                logger.info("%s refused: %s (%s)", action, exc.message, exc.code.value)
                return ServiceResult.fail(exc.message, exc.code.value, many=many)
            except ValidationError as exc:
                session.rollback()
                logger.info("%s rejected invalid input: %s", action, exc)
                return ServiceResult.fail(str(exc), ErrorCode.INVALID_INPUT.value, many=many)
            except StaleDataError:
                session.rollback()
                logger.warning("%s lost a concurrent update race", action)
                return ServiceResult.fail(
                    "Record was modified concurrently; reload and retry.",
                    ErrorCode.CONFLICT.value,
                    many=many,
                )
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("Error during %s", action)
                return ServiceResult.fail(store_error_message(exc), ErrorCode.STORE_ERROR.value, many=many)
            return ServiceResult.ok(data)

        return wrapper  # type: ignore[return-value]

    return decorator


ERROR_STATUS: Dict[str, int] = {
    ErrorCode.NOT_FOUND.value: 404,
    ErrorCode.TASK_NOT_FOUND.value: 404,
    ErrorCode.INVALID_ROLE.value: 400,
    ErrorCode.INVALID_RATING.value: 400,
    ErrorCode.INVALID_INPUT.value: 400,
    ErrorCode.INVALID_STATE.value: 409,
    ErrorCode.TURN_ALREADY_OPEN.value: 409,
    ErrorCode.DUPLICATE.value: 409,
    ErrorCode.CONFLICT.value: 409,
    ErrorCode.PARTIAL_FAILURE.value: 207,
}


def error_status(result: ServiceResult) -> int:
    if result.success:
        return 200
    return ERROR_STATUS.get(result.error_code or "", 500)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "Validation failed.",
                "errorCode": ErrorCode.INVALID_INPUT.value,
                "errors": jsonable_encoder(exc.errors()),
                "path": str(request.url),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # type: ignore[override]
        payload: Dict[str, Any] = {"success": False, "error": exc.detail or "HTTP error.", "path": str(request.url)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception("Unhandled error on %s (request %s)", request.url.path, get_request_id(request))
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error.",
                "path": str(request.url),
                "requestId": get_request_id(request),
            },
        )
