"""API error handling middleware: consistent error responses.

Registers FastAPI exception handlers that convert domain exceptions into
standardised ``{"error": {"code": "...", "message": "..."}}`` JSON responses.

Status code mapping:
- ``AnniversaryNotFoundError`` → 404 ``ANNIVERSARY_NOT_FOUND``
- ``HorizonConflictError`` → 409 ``HORIZON_CONFLICT``
- ``KeyError`` → 404 ``NOT_FOUND``
- ``ValueError`` (including ``AnniversaryValidationError``) → 400 ``VALIDATION_ERROR``
- Any other ``Exception`` → 500 ``INTERNAL_ERROR``
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from kindred.anniversaries.horizon import HorizonConflictError
from kindred.anniversaries.models import AnniversaryNotFoundError
from kindred.api.models import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _handle_anniversary_not_found(
    request: Request,
    exc: AnniversaryNotFoundError,
) -> JSONResponse:
    logger.info("Anniversary not found: %s", exc.event_id)
    return _error(404, "ANNIVERSARY_NOT_FOUND", str(exc), {"id": str(exc.event_id)})


async def _handle_horizon_conflict(
    request: Request,
    exc: HorizonConflictError,
) -> JSONResponse:
    """Return 409 when a concurrent writer advanced the horizon first."""
    logger.warning("Horizon conflict for site %s", exc.site_id, exc_info=exc)
    return _error(409, "HORIZON_CONFLICT", str(exc), {"site_id": exc.site_id})


async def _handle_key_error(
    request: Request,
    exc: KeyError,
) -> JSONResponse:
    missing = exc.args[0] if exc.args else None
    logger.info("Not found: %s", missing)
    return _error(404, "NOT_FOUND", f"Not found: {missing}")


async def _handle_value_error(
    request: Request,
    exc: ValueError,
) -> JSONResponse:
    """Return 400 for validation / value errors."""
    logger.info("Validation error: %s", exc)
    return _error(400, "VALIDATION_ERROR", str(exc))


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that catches any unhandled exception and returns a 500.

    Sits above the Starlette exception handler layer so that exceptions not
    covered by ``add_exception_handler`` still produce the standard envelope.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            return _error(500, "INTERNAL_ERROR", "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application.

    Call this from ``create_app()`` after constructing the ``FastAPI`` instance.
    """
    app.add_exception_handler(AnniversaryNotFoundError, _handle_anniversary_not_found)  # type: ignore[arg-type]
    app.add_exception_handler(HorizonConflictError, _handle_horizon_conflict)  # type: ignore[arg-type]
    app.add_exception_handler(KeyError, _handle_key_error)  # type: ignore[arg-type]
    app.add_exception_handler(ValueError, _handle_value_error)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
