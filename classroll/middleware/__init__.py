"""Middleware exports."""

from classroll.middleware.auth import AuthMiddleware

__all__ = ["AuthMiddleware"]
