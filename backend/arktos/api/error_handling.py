"""Exception handlers rendering every failure in the response envelope.

Domain errors (``core.errors.AppError``) keep their stable status and
code. Request validation failures become 400 ``VALIDATION_ERROR`` with a
per-field ``errors`` list. Anything else is logged with its traceback and
surfaced as 500 ``INTERNAL_ERROR``; the exception text is only exposed
outside production, including the underlying cause of a domain
``InternalError``.
"""

from core.errors import AppError, InternalError
from core.logging import logger
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from schemas.common import ErrorResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

_STATUS_TO_CODE = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "ROUTE_NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMIT_EXCEEDED",
}


def error_response(
    status_code: int,
    message: str,
    code: str,
    errors: list[dict] | None = None,
    headers: dict | None = None,
) -> JSONResponse:
    body = ErrorResponse(message=message, code=code, errors=errors)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI, *, is_production: bool) -> None:
    """Install consistent exception handlers on ``app``."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        message = exc.message
        if exc.status_code >= 500:
            logger.opt(exception=exc.__cause__ or exc).error(
                "{} {} failed: {}", request.method, request.url.path, exc.code
            )
            if not is_production and exc.__cause__ is not None:
                message = str(exc.__cause__) or repr(exc.__cause__)
        else:
            logger.warning(
                "{} {} -> {} {}", request.method, request.url.path, exc.status_code, exc.code
            )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return error_response(exc.status_code, message, exc.code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"] if part != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        logger.debug("Validation failed on {}: {}", request.url.path, errors)
        return error_response(400, "Validation failed", "VALIDATION_ERROR", errors=errors)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = f"Route {request.url.path} not found"
        else:
            message = str(exc.detail)
        code = _STATUS_TO_CODE.get(exc.status_code, "GENERIC_ERROR")
        return error_response(exc.status_code, message, code, headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.opt(exception=exc).error(
            "Unhandled error on {} {}", request.method, request.url.path
        )
        message = "Something went wrong!" if is_production else str(exc) or repr(exc)
        return error_response(500, message, InternalError.code)
