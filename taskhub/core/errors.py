"""
Domain error taxonomy.

Every policy or workflow failure is raised as one of the DomainError
subclasses below. Storage-level signals (StoreError, UniqueViolation) are
defined here too so the workflow layer can remap them in one place.
"""

from __future__ import annotations

import functools
from enum import Enum
from typing import Any, Optional, TypeVar

import pydantic
import structlog

log = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


class ErrorKind(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    VALIDATION = "VALIDATION"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL = "INTERNAL"


class DomainError(Exception):
    """Base class for errors that cross the service boundary."""

    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "Internal server error."

    def __init__(self, message: Optional[str] = None, *, details: Optional[dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value}: {self.message!r})"


class UnauthorizedError(DomainError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Authentication is required."


class ForbiddenError(DomainError):
    kind = ErrorKind.FORBIDDEN
    default_message = "You do not have permission for this action."


class NotFoundError(DomainError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found."


class ConflictError(DomainError):
    kind = ErrorKind.CONFLICT
    default_message = "Conflict detected."


class PreconditionFailedError(DomainError):
    kind = ErrorKind.PRECONDITION_FAILED
    default_message = "A required precondition was not met."


class InvalidTransitionError(DomainError):
    kind = ErrorKind.INVALID_TRANSITION
    default_message = "Invalid status transition."


class ValidationError(DomainError):
    kind = ErrorKind.VALIDATION
    default_message = "Input validation failed."


class RateLimitedError(DomainError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "Too many requests. Please try again later."


class InternalError(DomainError):
    kind = ErrorKind.INTERNAL
    default_message = "Internal server error."


# ---------------------------------------------------------------------------
# Storage signals
# ---------------------------------------------------------------------------

class StoreError(Exception):
    """Raised by a store when the underlying storage fails."""


class UniqueViolation(StoreError):
    """A write would break a uniqueness constraint."""

    def __init__(self, constraint: str):
        self.constraint = constraint
        super().__init__(f"Unique constraint violated: {constraint}")


def maps_store_errors(func):
    """Turn unexpected storage failures of a workflow operation into InternalError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except StoreError as exc:
            log.error("store.failure", operation=func.__name__, error=repr(exc))
            raise InternalError() from exc

    return wrapper


def parse_input(schema: type[ModelT], data: Any) -> ModelT:
    """Validate raw input against a schema, raising ValidationError on failure."""
    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            details={"errors": exc.errors(include_url=False, include_context=False)}
        ) from exc
