"""Shared response shapes."""

from __future__ import annotations

from pydantic import BaseModel

from wastex.domain.paging import Page


class ErrorResponse(BaseModel):
    """Body of every domain error response."""

    error: str
    message: str
    retryable: bool = False


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
    ledger_mode: str = "unknown"
    gateway_mode: str = "unknown"


class Pagination(BaseModel):
    """Position of one page within a listing."""

    current: int
    pages: int
    total: int
    has_next: bool
    has_prev: bool

    @classmethod
    def from_page(cls, page: Page) -> Pagination:
        return cls(
            current=page.page,
            pages=page.pages,
            total=page.total,
            has_next=page.has_next,
            has_prev=page.has_prev,
        )
