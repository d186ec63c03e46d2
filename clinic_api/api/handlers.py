"""
Exception Handlers

Translate booking engine errors into the JSON error envelope::

    {"success": false, "error": "SLOT_UNAVAILABLE", "message": "...", "details": {...}}
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from clinic_api.config import settings
from clinic_api.errors import (
    PersistenceError,
    SchedulingError,
    ValidationError,
    format_validation_errors,
)

logger = logging.getLogger(__name__)


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    if isinstance(exc, PersistenceError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        if not settings.debug:
            body = {
                "success": False,
                "error": exc.code,
                "message": "Internal error while accessing storage",
            }
            return JSONResponse(status_code=exc.status_code, content=body)
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    error = ValidationError(
        "Invalid request data",
        {"errors": format_validation_errors(exc.errors())},
    )
    logger.info(f"{request.method} {request.url.path} -> {error.code}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error envelope handlers on ``app``."""
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
