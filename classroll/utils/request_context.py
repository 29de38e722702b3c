"""Identity of the caller for the duration of a request.

``AuthMiddleware`` stores the verified token claims here; endpoints read them
back through the helpers below.
"""

import contextvars
import uuid

from classroll.exceptions import MissingSchoolError, UnauthorizedException
from classroll.utils.security import AccessClaims

_caller: contextvars.ContextVar[AccessClaims | None] = contextvars.ContextVar("caller", default=None)


def set_caller(claims: AccessClaims | None) -> None:
    _caller.set(claims)


def get_caller() -> AccessClaims | None:
    """Claims of the authenticated caller, or None for anonymous requests."""
    return _caller.get()


def require_caller() -> AccessClaims:
    """Raises UnauthorizedException for anonymous requests."""
    claims = _caller.get()
    if claims is None:
        raise UnauthorizedException()
    return claims


def get_current_user_id() -> uuid.UUID:
    return require_caller().user_id


def get_school_id() -> uuid.UUID:
    """School the caller administers.

    Raises:
        MissingSchoolError: Token had no usable school claim
    """
    school_id = require_caller().school_id
    if school_id is None:
        raise MissingSchoolError()
    return school_id
