"""Custom exception classes and global exception handlers."""

import logging
import traceback

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class ClassRollException(Exception):
    """Base exception for all ClassRoll-specific errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(ClassRollException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found", 404)


class ForbiddenException(ClassRollException):
    """Access forbidden exception."""

    def __init__(self, message: str = "You don't have permission to perform this action"):
        super().__init__(message, 403)


class UnauthorizedException(ClassRollException):
    """Authentication required exception."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, 401)


class ConflictException(ClassRollException):
    """Resource conflict exception."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, 409)


class InvalidStateException(ConflictException):
    """Operation attempted against an entity that is not in the required state."""

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.reason = reason


class InvitationUnavailableException(InvalidStateException):
    """Invitation can't be used right now (expired, revoked or exhausted)."""

    MESSAGES = {
        "expired": "This invitation code has expired",
        "revoked": "This invitation code has been revoked",
        "exhausted": "This invitation code has reached its maximum number of uses",
    }

    def __init__(self, reason: str):
        super().__init__(self.MESSAGES.get(reason, "This invitation code is not active"), reason)


class ValidationException(ClassRollException):
    """Validation error exception with field-level errors."""

    def __init__(self, errors: list[dict] | str):
        if isinstance(errors, str):
            errors = [{"field": "general", "message": errors}]
        super().__init__("Validation failed", 422)
        self.errors = errors


class InternalException(ClassRollException):
    """Failure not attributable to caller input."""

    def __init__(self, message: str = "An internal error occurred", retryable: bool = False):
        super().__init__(message, 500)
        self.retryable = retryable


class CodeGenerationError(InternalException):
    """Could not produce a collision-free code within the retry budget."""

    def __init__(self, attempts: int):
        super().__init__(
            f"Could not generate a unique invitation code after {attempts} attempts",
            retryable=True,
        )


class MissingSchoolError(ClassRollException):
    """The caller's token names no school."""

    def __init__(self, message: str = "Token carries no school"):
        super().__init__(message, 400)


def classify_exception(exc: BaseException, action: str = "operation") -> ClassRollException:
    """Map a failure raised inside a unit of work onto the error taxonomy.

    Domain exceptions pass through unchanged, duplicate keys become conflicts
    and everything else is reported as an internal error.
    """
    if isinstance(exc, ClassRollException):
        return exc
    if isinstance(exc, IntegrityError):
        return ConflictException(f"Could not complete {action}: a record with the same unique value already exists")
    if isinstance(exc, TimeoutError):
        return InternalException(f"The {action} timed out", retryable=True)
    return InternalException(f"Could not complete {action}")


def _error_content(exc: ClassRollException) -> dict:
    """Build the JSON error envelope for a ClassRoll exception."""
    content = {
        "status": "error",
        "message": exc.message,
    }
    if hasattr(exc, "errors"):
        content["errors"] = exc.errors
    if getattr(exc, "reason", None):
        content["reason"] = exc.reason
    if hasattr(exc, "retryable"):
        content["retryable"] = exc.retryable
    return content


def create_exception_handlers():
    """Create the exception handlers registered on the application."""

    async def classroll_exception_handler(request: Request, exc: ClassRollException):
        """Handle ClassRoll custom exceptions."""
        if exc.status_code >= 500:
            logger.error(f"ClassRollException on {request.method} {request.url.path}: {exc.message} (status={exc.status_code})")
        else:
            logger.warning(f"ClassRollException on {request.method} {request.url.path}: {exc.message} (status={exc.status_code})")

        return JSONResponse(status_code=exc.status_code, content=_error_content(exc))

    async def validation_exception_handler(request: Request, exc: ValidationException):
        """Handle validation exceptions with field-level errors."""
        logger.warning(f"ValidationException on {request.method} {request.url.path}: {exc.errors}")

        return JSONResponse(status_code=exc.status_code, content=_error_content(exc))

    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}")
        logger.error(f"Exception: {type(exc).__name__}: {exc}")
        tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
        logger.error("".join(tb_lines))

        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "An unexpected error occurred",
            },
        )

    return {
        ClassRollException: classroll_exception_handler,
        ValidationException: validation_exception_handler,
        Exception: generic_exception_handler,
    }
