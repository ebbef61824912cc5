"""Error taxonomy and the handlers that render it as the API's error envelope."""

import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class FinSphereError(Exception):
    status_code = 500

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationFailed(FinSphereError):
    status_code = 400


class AuthenticationError(FinSphereError):
    status_code = 401


class PermissionDenied(FinSphereError):
    status_code = 403


class NotFound(FinSphereError):
    status_code = 404


class StateConflict(FinSphereError):
    status_code = 400


class DuplicateError(FinSphereError):
    status_code = 400


def error_body(message: str, errors: Optional[List[str]] = None) -> dict:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def _field_message(error: dict) -> str:
    location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    message = error.get("msg", "Invalid value")
    if location:
        return f"{'.'.join(location)}: {message}"
    return message


async def finsphere_error_handler(request: Request, exc: FinSphereError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.errors))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [_field_message(error) for error in exc.errors()]
    return JSONResponse(status_code=400, content=error_body("Validation failed", errors))


async def http_exception_handler(request: Request, exc: HTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Unique constraint violated on {request.url.path}: {exc.orig}")
    return JSONResponse(status_code=400, content=error_body("Record already exists"))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("Internal server error"))


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(FinSphereError, finsphere_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
