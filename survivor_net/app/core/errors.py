"""
Error taxonomy and FastAPI handlers.

    Exception              HTTP   code               Raised by
    ────────────────────   ────   ────────────────   ─────────────────────────
    InvalidArgumentError   400    INVALID_ARGUMENT   registry / check-in on a blank id
    NotFoundError          404    NOT_FOUND          SOS actions on an unknown alert id
    MirrorError            502    MIRROR_ERROR       SqlAlchemyMirror (logged, never surfaced
                                                     by the coordinator)
    ValueError             422    VALIDATION_ERROR   anything else rejecting input
    Exception              500    INTERNAL_ERROR     bugs

Malformed optional fields (location, note, severity, ...) are normalised
by the engine and never reach this module.

Every error body has the same shape:

    {"error": {"code": "INVALID_ARGUMENT", "message": "...", "status": 400,
               "details": {"field": "participant_id"}, "request_id": "..."}}

Usage:
    from survivor_net.app.core.errors import InvalidArgumentError

    raise InvalidArgumentError("participant_id is required", field="participant_id")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from survivor_net.app.core.config import settings
from survivor_net.app.core.logging_config import get_request_context

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class SurvivorNetworkError(Exception):
    """Root of every error the service raises on purpose."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "code": self.error_code,
            "message": self.message,
            "status": self.status_code,
        }
        if self.details:
            body["details"] = self.details
        return body


class InvalidArgumentError(SurvivorNetworkError, ValueError):
    """An identity field was missing or blank after trimming."""

    status_code = 400
    error_code = "INVALID_ARGUMENT"

    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)


class NotFoundError(SurvivorNetworkError):
    """A referenced feed record (e.g. an SOS alert) does not exist."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} '{identifier}' not found",
            details={"resource": resource, "id": identifier},
        )


class MirrorError(SurvivorNetworkError):
    """A durable mirror read or write failed."""

    status_code = 502
    error_code = "MIRROR_ERROR"

    def __init__(self, operation: str, message: str = ""):
        super().__init__(
            f"Durable mirror '{operation}' failed: {message}",
            details={"operation": operation},
        )
        self.operation = operation


# ═══════════════════════════════════════════════════════════════════════════
# Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _error_response(body: Dict[str, Any], request: Optional[Request] = None) -> JSONResponse:
    request_id = get_request_context().get("request_id")
    if request_id:
        body["request_id"] = request_id
    if request is not None and not settings.is_production:
        body["path"] = request.url.path
        body["method"] = request.method
    return JSONResponse(status_code=body["status"], content={"error": body})


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Attach the handlers above to ``app``."""

    @app.exception_handler(SurvivorNetworkError)
    async def handle_network_error(request: Request, exc: SurvivorNetworkError):
        level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(level, "%s: %s", exc.error_code, exc.message, extra={"status_code": exc.status_code})
        return _error_response(exc.to_dict(), request)

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("Rejected input: %s", exc, extra={"status_code": 422})
        return _error_response(
            {"code": "VALIDATION_ERROR", "message": str(exc), "status": 422}, request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical("Unhandled %s\n%s", type(exc).__name__, traceback.format_exc())
        body: Dict[str, Any] = {"code": "INTERNAL_ERROR", "status": 500}
        if settings.DEBUG:
            body["message"] = str(exc)
            body["details"] = {"traceback": traceback.format_exc().splitlines()}
        else:
            body["message"] = "Internal server error"
        return _error_response(body, request)
