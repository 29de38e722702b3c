"""Bearer-token middleware."""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from classroll.utils.request_context import set_caller
from classroll.utils.security import read_access_claims

BEARER = "Bearer "


class AuthMiddleware(BaseHTTPMiddleware):
    """Attaches the caller's token claims to the request context.

    Anonymous and badly-signed requests pass through with no caller; the
    invitation and registration routes decide for themselves whether that is
    acceptable.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        set_caller(None)

        header = request.headers.get("Authorization", "")
        if header.startswith(BEARER):
            set_caller(read_access_claims(header.removeprefix(BEARER).strip()))

        try:
            return await call_next(request)
        finally:
            set_caller(None)
