"""Page arithmetic for the per-user listing endpoints."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from wastex.domain.exceptions import ValidationError

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

T = TypeVar("T")


def check_page(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError(f"page must be 1 or more (got {page})")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE} (got {limit})")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One 1-based page of results plus the unpaged total.

    Attributes:
        page: Requested page number.
        limit: Page size.
        total: Rows matching the filter across all pages.
        items: Rows on this page.
    """

    page: int
    limit: int
    total: int
    items: list[T] = field(default_factory=list)

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1
