"""Map the service error taxonomy onto HTTP responses.

Services raise ProgressServiceError subclasses and never know about
HTTP; these handlers are the single place where a status code is chosen.
Every error body carries ``success: false`` so device clients can use
one response shape for both outcomes.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from progress_service.core.errors import (
    ClassNotFound,
    ConflictError,
    NotFoundError,
    TransientError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "message": message, **extra},
    )


async def _class_not_found(_request: Request, exc: ClassNotFound) -> JSONResponse:
    return _error(
        status.HTTP_404_NOT_FOUND, "ClassNotFound", str(exc), class_code=exc.class_code
    )


async def _not_found(_request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, "NotFound", str(exc))


async def _validation(_request: Request, exc: ValidationError) -> JSONResponse:
    return _error(422, "ValidationError", str(exc))


async def _conflict(_request: Request, exc: ConflictError) -> JSONResponse:
    return _error(status.HTTP_409_CONFLICT, "Conflict", str(exc))


async def _transient(request: Request, exc: TransientError) -> JSONResponse:
    logger.warning("%s %s unavailable: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "error": "Unavailable", "message": str(exc)},
        headers={"Retry-After": "30"},
    )


def register_error_handlers(app: FastAPI) -> None:
    # Starlette picks the handler of the most specific class in the MRO.
    app.add_exception_handler(ClassNotFound, _class_not_found)
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(ValidationError, _validation)
    app.add_exception_handler(ConflictError, _conflict)
    app.add_exception_handler(TransientError, _transient)
