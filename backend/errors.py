from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str
    location: str = "body"


class ApiError(Exception):
    """Base for errors that map onto a JSON error response."""

    status_code = 500
    message = "Server error"
    detail: str | None = None

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_body(self) -> dict:
        return {"message": self.message}


class ValidationFailed(ApiError):
    status_code = 400
    message = "Validation failed"

    def __init__(self, errors: list[FieldError], message: str | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors)

    def to_body(self) -> dict:
        return {"message": self.message, "errors": [asdict(error) for error in self.errors]}


class ConflictError(ApiError):
    status_code = 400
    message = "User already exists"


class InvalidCredentials(ApiError):
    status_code = 400
    message = "Invalid credentials"


class Unauthorized(ApiError):
    status_code = 401
    message = "Token is not valid"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class StoreUnavailable(ApiError):
    detail = "Store is not open"


def _field_errors_from_request(exc: RequestValidationError) -> list[FieldError]:
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        location = loc[0] if loc else "body"
        field = loc[-1] if len(loc) > 1 else location
        errors.append(FieldError(field=field, message=error.get("msg", "Invalid value."), location=location))
    return errors


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail or exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        failure = ValidationFailed(_field_errors_from_request(exc))
        return JSONResponse(status_code=failure.status_code, content=failure.to_body())

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"message": "Server error"})
