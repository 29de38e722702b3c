"""Role checks for route handlers."""

from functools import wraps
from typing import Callable

from classroll.exceptions import ForbiddenException
from classroll.models.user import Role
from classroll.utils.request_context import require_caller


def require_role(*allowed_roles: Role | str) -> Callable:
    """Reject callers whose token role is not one of ``allowed_roles``.

    Anonymous callers get 401, callers with another role get 403.

        @router.put("/{request_id}/approve")
        @require_role(Role.SCHOOL_ADMIN)
        async def approve_registration(...):
    """
    role_values = tuple(Role(role).value for role in allowed_roles)

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            if not require_caller().has_role(*role_values):
                raise ForbiddenException()
            return await func(*args, **kwargs)

        return wrapper

    return decorator
