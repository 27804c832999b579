"""
Error taxonomy and the handlers that turn it into HTTP responses.
"""

import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[str]] = None):
        self.message = message or self.message
        self.errors = errors or []
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    message = "Validation failed"


class ConflictError(AppError):
    status_code = 400
    message = "Already exists"


class AuthError(AppError):
    status_code = 401
    message = "Invalid token"


class Unauthorized(AuthError):
    # no credential at all
    status_code = 403
    message = "No token provided"


class InvalidCredentials(AuthError):
    message = "Invalid credentials"


class NotFoundError(AppError):
    status_code = 404
    message = "Not found"


class PersistenceError(AppError):
    status_code = 500
    message = "Database not configured"


def _body(message: str, errors: Optional[List[str]] = None) -> dict:
    body = {"message": message}
    if errors:
        body["errors"] = errors
    return body


def register_exception_handlers(app: FastAPI, debug: bool = False) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_body(exc.message, exc.errors))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = []
        for err in exc.errors():
            loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "header")]
            field = ".".join(loc) or "request"
            errors.append(f"{field}: {err.get('msg')}")
        return JSONResponse(status_code=400, content=_body("Invalid request", errors))

    @app.exception_handler(PyMongoError)
    async def database_error_handler(request: Request, exc: PyMongoError):
        logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
        body = _body("Database error")
        if debug:
            body["error"] = str(exc)
        return JSONResponse(status_code=500, content=body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        body = _body("Internal server error")
        if debug:
            body["error"] = str(exc)
        return JSONResponse(status_code=500, content=body)
