import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for billing ledger failures surfaced to callers."""

    status_code = 400
    default_detail = "Ledger operation failed."

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unavailable(LedgerError):
    status_code = 503
    default_detail = "Ledger store or member directory is unreachable."


class NotFound(LedgerError):
    status_code = 404
    default_detail = "Record not found."


class Conflict(LedgerError):
    """A conditional write kept losing races; re-fetch and retry."""

    status_code = 409
    default_detail = "Concurrent update detected. Re-fetch the record and retry."


class AlreadyPaid(LedgerError):
    status_code = 409
    default_detail = "Charge is already paid."


class PeriodNotDue(LedgerError):
    status_code = 409
    default_detail = "Period has not reached its grace day yet."


class InvalidAmount(LedgerError):
    status_code = 422
    default_detail = "Amount must be greater than zero."


def _error_response(
    request: Request,
    status_code: int,
    detail: Any,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    content: Dict[str, Any] = {"detail": detail, "path": request.url.path, **extra}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def _ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return _error_response(request, exc.status_code, exc.detail)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(request, 422, "Validation failed.", errors=jsonable_encoder(exc.errors()))


async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail or "HTTP error.", headers=exc.headers)


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(request, 500, "Internal server error.")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, _ledger_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(HTTPException, _http_error)
    app.add_exception_handler(Exception, _unhandled_error)
