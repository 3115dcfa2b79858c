"""
Translation of domain errors into HTTP responses.

Body shape: {"error": {"code": ..., "message": ..., "status": ...}}
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from taskhub.core.errors import DomainError, ErrorKind, InternalError, ValidationError

log = structlog.get_logger()

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.PRECONDITION_FAILED: 412,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
}


def error_response(exc: DomainError) -> JSONResponse:
    status = STATUS_BY_KIND[exc.kind]
    body = {"code": exc.kind.value, "message": exc.message, "status": status}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=status, content={"error": body})


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.kind == ErrorKind.INTERNAL:
        log.error("request.internal_error", error=repr(exc))
    return error_response(exc)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return error_response(ValidationError(details={"errors": errors}))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.unhandled_error", error_type=type(exc).__name__)
    return error_response(InternalError())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
