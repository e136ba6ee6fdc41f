"""Exception → JSON error body mapping.

Every error response has the shape {"error": "<summary>"}; validation
failures add "details", and in dev the underlying message is added as
"message".  Stack traces are logged, never returned.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import SETTINGS
from app.models.progress import ObservationError
from app.repos.progress_repo import StorageError

logger = logging.getLogger(__name__)


def _field_name(loc: tuple) -> str | None:
    # ("body", "currentTime") / ("query", "userId") / ("body",) for a bad JSON body
    names = [part for part in loc[1:] if isinstance(part, str)]
    return names[-1] if names else None


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    field = _field_name(tuple(errors[0]["loc"])) if errors else None
    summary = f"Invalid or missing {field}" if field else "Invalid request body"
    logger.warning("Rejected request %s %s: %s", request.method, request.url.path, summary)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": summary,
            "details": [
                {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                for e in errors
            ],
        },
    )


async def _observation_error(request: Request, exc: ObservationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)}
    )


async def _storage_error(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(
        "Storage failure on %s %s", request.method, request.url.path, exc_info=exc
    )
    content = {"error": "Storage unavailable"}
    if SETTINGS.is_dev:
        content["message"] = str(exc)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=content)


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"error": "Internal server error"}
    if SETTINGS.is_dev:
        content["message"] = str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(ObservationError, _observation_error)  # type: ignore[arg-type]
    app.add_exception_handler(StorageError, _storage_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error)
