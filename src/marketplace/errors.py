"""Domain exceptions and the JSON error envelope returned by the API.

Every error leaves the service as::

    {"success": false, "error": {"type": ..., "message": ..., "code": ..., "details": ...}}

with the HTTP status taken from the exception class.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    type = "AppError"
    code = "APP_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(AppError):
    type = "ValidationError"
    code = "VALIDATION_ERROR"
    status_code = 400


class UnauthorizedError(AppError):
    type = "UnauthorizedError"
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class ForbiddenError(AppError):
    type = "ForbiddenError"
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class NotFoundError(AppError):
    type = "NotFoundError"
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(AppError):
    type = "ConflictError"
    code = "CONFLICT"
    status_code = 409


class ServerError(AppError):
    type = "ServerError"
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


def error_response(error: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": error.to_dict()},
    )


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = {}
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        fields[loc or "body"] = err.get("msg")
    return error_response(ValidationError("Invalid request data", {"fields": fields}))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(ServerError())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
