"""
Error taxonomy and the centralized FastAPI error handlers.

Handlers raise the domain errors below for validation and authorization
failures. Everything else (database, mail provider) propagates to the
catch-all handler, which answers 500 without leaking internals.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class GradCollabError(Exception):
    """Base class for errors answered directly by the API."""

    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_response(self) -> Any:
        return {"err": self.message}


class ValidationError(GradCollabError):
    """Malformed or missing input. Carries a field -> message mapping."""

    http_status = status.HTTP_403_FORBIDDEN
    message = "Invalid request data"

    def __init__(self, fields: dict[str, str], location: str = "body"):
        super().__init__(self.message)
        self.fields = fields
        self.location = location

    def to_response(self) -> Any:
        return {
            name: {"msg": msg, "param": name, "location": self.location}
            for name, msg in self.fields.items()
        }


class UnauthenticatedError(GradCollabError):
    http_status = status.HTTP_401_UNAUTHORIZED
    message = "Unauthorized"


class ForbiddenError(GradCollabError):
    http_status = status.HTTP_403_FORBIDDEN
    message = "Forbidden"


class ConflictError(GradCollabError):
    """A field value collides with an existing record (duplicate email)."""

    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_response(self) -> Any:
        return {"entire": [], "fields": {self.field: self.message}}


class AuthError(GradCollabError):
    """Login rejected: unknown email or wrong password."""

    http_status = status.HTTP_403_FORBIDDEN
    message = "Invalid email or password."

    def to_response(self) -> Any:
        return {"entire": [self.message], "fields": {}}


class NotFoundError(GradCollabError):
    http_status = status.HTTP_404_NOT_FOUND
    message = "Not found"


class InviteConflictError(GradCollabError):
    """
    The atomic invite append matched no document: wrong id, wrong owner or
    the address is already invited. The three cases are indistinguishable.
    """

    message = "Invite could not be recorded"

    def to_response(self) -> Any:
        return {"err": 1}


class UpdateError(GradCollabError):
    message = "Failed to update"


class InfrastructureError(GradCollabError):
    """Database or provider failure surfaced as a plain 500."""


class MailDispatchError(InfrastructureError):
    message = "Failed to send email"


def register_error_handlers(app: FastAPI) -> None:
    """Register the domain, validation and catch-all handlers on the app."""

    @app.exception_handler(GradCollabError)
    async def gradcollab_error_handler(request: Request, exc: GradCollabError):
        if exc.http_status >= 500:
            logger.error(
                "%s on %s: %s", type(exc).__name__, request.url.path, exc.message
            )
        else:
            logger.info(
                "%s on %s: %s", type(exc).__name__, request.url.path, exc.message
            )
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ):
        error = validation_error_from_pydantic(exc.errors())
        logger.info("Validation error on %s: %s", request.url.path, error.fields)
        return JSONResponse(status_code=error.http_status, content=error.to_response())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s: %s", request.url.path, exc, exc_info=exc
        )
        error = InfrastructureError()
        return JSONResponse(status_code=error.http_status, content=error.to_response())


def validation_error_from_pydantic(errors: list[dict]) -> ValidationError:
    """Collapse pydantic error entries into a single field -> message mapping."""
    fields: dict[str, str] = {}
    location = "body"
    for entry in errors:
        loc = [str(part) for part in entry.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path"):
            location = loc[0]
            loc = loc[1:]
        name = ".".join(loc) or "body"
        fields.setdefault(name, entry.get("msg", "Invalid value"))
    return ValidationError(fields, location=location)
