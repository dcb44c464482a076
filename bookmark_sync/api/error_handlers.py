"""Exception handlers rendering every failure in the error envelope."""

from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from bookmark_sync.api.exceptions import APIException, ErrorCode, ErrorType
from bookmark_sync.api.responses import error_response, make_error

logger = logging.getLogger(__name__)


def _correlation_id(request: Request) -> str | None:
    return getattr(request.state, "correlation_id", None)


async def api_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, APIException):
        raise exc

    correlation_id = _correlation_id(request)
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "api_error",
        extra={
            "correlation_id": correlation_id,
            "error_code": exc.code.value,
            "status_code": exc.status_code,
            "path": request.url.path,
            "error": exc.message,
        },
    )

    detail = make_error(
        exc.code.value,
        exc.message,
        error_type=exc.error_type.value,
        retryable=exc.retryable,
        details=exc.details or None,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(detail, correlation_id=correlation_id),
    )


async def validation_exception_handler(request: Request, exc: Exception) -> Response:
    """422 listing each offending parameter."""
    if not isinstance(exc, RequestValidationError):
        raise exc

    correlation_id = _correlation_id(request)
    fields = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "request_validation_failed",
        extra={"correlation_id": correlation_id, "path": request.url.path, "fields": fields},
    )

    detail = make_error(
        ErrorCode.VALIDATION_ERROR.value,
        "Request validation failed",
        error_type=ErrorType.VALIDATION.value,
        details={"fields": fields},
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response(detail, correlation_id=correlation_id),
    )


async def global_exception_handler(request: Request, exc: Exception) -> Response:
    correlation_id = _correlation_id(request)
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={"correlation_id": correlation_id, "path": request.url.path},
    )

    detail = make_error(
        ErrorCode.INTERNAL_ERROR.value,
        "An internal server error occurred",
        error_type=ErrorType.INTERNAL.value,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(detail, correlation_id=correlation_id),
    )
