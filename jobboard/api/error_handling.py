from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from jobboard.api.schemas import Envelope, ErrorBody
from jobboard.logging import get_logger
from jobboard.service.errors import ServiceError, ValidationError
from jobboard.service.resolve import invalid_args_from

logger = get_logger(__name__)

_STATUS_TO_CODE = {
    400: "bad_user_input",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    500: "internal_server_error",
}


def _error_code_for_status(status_code: int) -> str:
    if status_code >= 500:
        return "internal_server_error"
    return _STATUS_TO_CODE.get(status_code, "bad_user_input")


def _error_response(
    status_code: int,
    message: str,
    details: dict | list | None = None,
    code: str | None = None,
) -> JSONResponse:
    error_code = code or _error_code_for_status(status_code)
    error_body = ErrorBody(code=error_code, message=message, details=details)
    envelope = Envelope(status="error", error=error_body)
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


def service_error_response(request: Request, exc: ServiceError) -> JSONResponse:
    log_fn = logger.error if exc.status_code >= 500 else logger.warning
    log_fn(
        "service_error",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
        detail=exc.detail,
    )
    return _error_response(exc.status_code, exc.message, exc.detail, code=exc.error_code)


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as the error envelope."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        return service_error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        invalid_args = invalid_args_from(exc)
        logger.warning(
            "request_validation_failed",
            path=request.url.path,
            method=request.method,
            invalid_args=invalid_args,
        )
        error = ValidationError(invalid_args)
        return _error_response(error.status_code, error.message, error.detail, code=error.error_code)

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "http error"
        details = exc.detail if isinstance(exc.detail, (dict, list)) else None
        if exc.status_code >= 500:
            logger.error(
                "http_error",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
                message=message,
            )
        return _error_response(exc.status_code, message, details)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return _error_response(500, "Internal Server Error", code="internal_server_error")
