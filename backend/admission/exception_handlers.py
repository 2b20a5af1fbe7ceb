"""
Map exceptions to JSON error responses.

Every error body carries ``detail`` and a machine-readable ``code``, plus any
extra fields the raising code attached (``current_status``,
``confirmation_code``, ...). Request validation failures answer 400 with
``VALIDATION_ERROR``; anything unhandled is logged and answers 500.
"""

from typing import Any, Callable, Coroutine

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.responses import Response

from admission.exceptions import AdmissionError

ExceptionHandler = Callable[[Request, Exception], Coroutine[Any, Any, Response]]


async def admission_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = exc if isinstance(exc, AdmissionError) else AdmissionError(str(exc))
    if error.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {error.message}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_errors(errors), "code": "VALIDATION_ERROR"},
    )


async def general_500_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "INTERNAL_ERROR"},
    )


def jsonable_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop the raw exception objects pydantic attaches under ``ctx``."""
    return [{k: v for k, v in err.items() if k not in ("ctx", "url")} for err in errors]


EXCEPTION_HANDLERS: dict[type[Exception], ExceptionHandler] = {
    AdmissionError: admission_error_handler,
    RequestValidationError: validation_error_handler,
    Exception: general_500_exception_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
