"""Common Pydantic schemas used across the application."""

import math
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Pagination metadata for list responses."""

    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, page_size: int, total_items: int) -> "PaginationMeta":
        """Compute pagination metadata from a page request and a total count."""
        total_pages = math.ceil(total_items / page_size) if page_size > 0 else 0
        return cls(
            page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class APIResponse(BaseModel, Generic[T]):
    """Standard API response envelope.

    All JSON API responses use this consistent envelope structure.
    """

    status: str = "success"
    data: T | None = None
    message: str | None = None
    errors: list[dict[str, Any]] | None = None
    pagination: PaginationMeta | None = None
