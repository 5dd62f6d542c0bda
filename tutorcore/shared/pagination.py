"""Offset pagination shared by the list endpoints."""

from __future__ import annotations

from typing import Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field

from tutorcore.core.config import get_settings

T = TypeVar("T")

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = get_settings().credit_history_max_limit


class PaginationParams(BaseModel):
    limit: int = Field(ge=1)
    offset: int = Field(ge=0)

    @property
    def end(self) -> int:
        return self.offset + self.limit


def get_pagination_params(
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(default=0, ge=0),
) -> PaginationParams:
    """Read ``limit``/``offset`` query params; ``limit`` is capped at the history page cap."""
    return PaginationParams(limit=limit, offset=offset)


class Page(BaseModel, Generic[T]):
    """One slice of a listing plus the total number of matching rows."""

    items: list[T]
    total: int
    limit: int
    offset: int
    has_more: bool


def build_page(items: list[T], total: int, params: PaginationParams) -> Page[T]:
    return Page(
        items=items,
        total=total,
        limit=params.limit,
        offset=params.offset,
        has_more=params.end < total,
    )
