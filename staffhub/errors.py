"""
Error taxonomy for the attendance/geofence core and the handlers that turn
it into the API's ``{"success": false, "error": ...}`` envelope.
"""
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException


logger = structlog.get_logger(__name__)


class StaffHubError(Exception):
    """Base class for every failure the core reports to its callers."""

    status_code = 500
    default_code = "error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(StaffHubError):
    status_code = 400
    default_code = "invalid_field"


class KmlImportError(StaffHubError):
    """Structural failure reading a KML/KMZ upload."""

    status_code = 400
    default_code = "import_failed"

    NO_KML_IN_ARCHIVE = "no_kml_in_archive"
    INVALID_XML = "invalid_xml"
    NO_FEATURES_FOUND = "no_features_found"
    UNSUPPORTED_FILE_TYPE = "unsupported_file_type"
    MISSING_LOCATION_ID = "missing_location_id"


class ForbiddenError(StaffHubError):
    status_code = 403
    default_code = "forbidden"


class NotFoundError(StaffHubError):
    status_code = 404
    default_code = "not_found"


class ConflictError(StaffHubError):
    status_code = 409
    default_code = "conflict"

    ALREADY_CLOCKED_IN = "already_clocked_in"
    CLOCK_INTERVAL = "clock_interval"
    ZONE_HAS_ASSIGNMENTS = "zone_has_assignments"
    LEAVE_ALREADY_DECIDED = "leave_already_decided"


class PreconditionError(StaffHubError):
    status_code = 412
    default_code = "precondition_failed"

    NO_ACTIVE_CLOCK_IN = "no_active_clock_in"
    ALREADY_CLOCKED_OUT = "already_clocked_out"


class PersistenceError(StaffHubError):
    status_code = 503
    default_code = "store_unavailable"


def error_body(message: str, code: Optional[str] = None) -> dict:
    body = {"success": False, "error": message}
    if code:
        body["code"] = code
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StaffHubError)
    async def _staffhub_error(request: Request, exc: StaffHubError):
        if exc.status_code >= 500:
            logger.error("request.failed", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.code))

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.get("loc", []) if p != "body")
            message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
        else:
            message = "Invalid request"
        return JSONResponse(status_code=422, content=error_body(message, "invalid_field"))

    @app.exception_handler(OperationalError)
    async def _store_unavailable(request: Request, exc: OperationalError):
        logger.error("persistence.unavailable", path=request.url.path, error=str(exc.orig))
        err = PersistenceError("Database is unavailable, please retry")
        return JSONResponse(status_code=err.status_code, content=error_body(err.message, err.code))

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception):
        logger.error("request.unhandled", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(status_code=500, content=error_body("Internal server error", "internal_error"))
