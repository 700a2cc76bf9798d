from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from typing import Any

from app.config.sentry import capture_exception, add_breadcrumb
from app.core.exceptions import AuthServiceError
from app.logging.utils import get_app_logger

logger = get_app_logger(__name__)


def is_debug(request: Request) -> bool:
    """DEBUG of the app serving the request; false (production) when unset."""
    configs = getattr(request.app.state, "configs", None)
    return bool(configs and configs.DEBUG)


def error_payload(error_code: str, message: str) -> dict:
    return {"success": False, "error": error_code, "message": message}


def _format_validation_message(errors) -> str:
    """Single readable line: "field: error" for the first failing field"""
    if not errors:
        return "Invalid request data"
    err = errors[0]
    loc = [str(part) for part in err.get("loc", []) if part != "body"]
    msg = err.get("msg", "Invalid input")
    # pydantic prefixes messages raised from validators
    msg = msg.removeprefix("Value error, ")
    return f"{'.'.join(loc)}: {msg}" if loc else msg


async def _auth_service_error_handler(request: Request, exc: AuthServiceError):
    """Domain errors carry their own status and stable error code."""
    if exc.status_code >= 500:
        logger.error(f"service_error | method={request.method} path={request.url.path} error={exc.error_code} message={exc.message}")
    else:
        logger.warning(f"service_error | method={request.method} path={request.url.path} error={exc.error_code} status={exc.status_code}")

    headers = None
    retry_after = getattr(exc, "retry_after_seconds", 0)
    if retry_after:
        headers = {"Retry-After": str(retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400 with the common error shape."""
    errors = exc.errors()
    logger.warning(f"validation_error | method={request.method} path={request.url.path} errors={errors}")

    add_breadcrumb(
        message=f"Validation error on {request.method} {request.url.path}",
        category="validation",
        level="warning",
        data={"fields": [".".join(str(p) for p in e.get("loc", [])) for e in errors]},
    )

    # field names and reasons only, never the submitted values
    message = _format_validation_message(errors)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_payload("VALIDATION_ERROR", message))


async def _general_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions with production-safe messages."""
    logger.error(
        f"unhandled_exception | method={request.method} path={request.url.path} exception_type={type(exc).__name__} exception_message={str(exc)}",
        exc_info=exc,
    )

    add_breadcrumb(
        message=f"Unhandled exception on {request.method} {request.url.path}",
        category="exception",
        level="error",
        data={"exception_type": type(exc).__name__},
    )
    capture_exception(exc)

    message = f"Internal server error: {str(exc)}" if is_debug(request) else "Something went wrong"
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_payload("INTERNAL_ERROR", message))


async def _http_exception_handler(request: Request, exc: Any):
    """Handle HTTP exceptions with production-safe messages."""
    status_code = getattr(exc, 'status_code', status.HTTP_500_INTERNAL_SERVER_ERROR)
    detail = getattr(exc, 'detail', str(exc))
    if status_code >= 500:
        logger.error(f"http_exception | method={request.method} path={request.url.path} status_code={status_code} detail={detail}")
        add_breadcrumb(
            message=f"HTTP {status_code} error on {request.method} {request.url.path}",
            category="http",
            level="error",
            data={"status_code": status_code, "detail": detail},
        )
        capture_exception(exc)
    else:
        logger.warning(f"http_exception | method={request.method} path={request.url.path} status_code={status_code} detail={detail}")

    if status_code == 404:
        error_code, message = "NOT_FOUND", "Resource not found"
    elif status_code == 405:
        error_code, message = "METHOD_NOT_ALLOWED", "Method not allowed"
    elif status_code == 401:
        error_code, message = "UNAUTHORIZED", "Authentication required"
    elif status_code == 403:
        error_code, message = "FORBIDDEN", "Access denied"
    elif 400 <= status_code < 500:
        error_code, message = "BAD_REQUEST", "Invalid request"
    else:
        error_code, message = "INTERNAL_ERROR", "Something went wrong"
    if is_debug(request) and isinstance(detail, str):
        message = detail

    return JSONResponse(status_code=status_code, content=error_payload(error_code, message),
                        headers=getattr(exc, 'headers', None))


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the given FastAPI instance."""
    app.add_exception_handler(AuthServiceError, _auth_service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _general_exception_handler)
