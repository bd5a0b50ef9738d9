"""Entry ordering and page/pageSize parsing for the report detail view."""

from __future__ import annotations

from collections.abc import Sequence
from typing import NamedTuple, TypeVar

from bugtracker.errors import ValidationFailure
from bugtracker.models.enums import SortOrder
from bugtracker.models.report import Entry

T = TypeVar("T")

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10


class Page(NamedTuple):
    """1-based page window."""

    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def slice(self, items: Sequence[T]) -> list[T]:
        return list(items[self.offset:self.offset + self.page_size])


def _parse_positive(raw: str) -> int | None:
    # Plain ASCII digits only; int() would also take "+2" and "1_0"
    text = raw.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    value = int(text)
    return value if value >= 1 else None


def parse_pagination(page: str | None, page_size: str | None) -> Page | None:
    """Turn raw query values into a Page.

    Neither supplied -> None (no pagination). One supplied -> the other
    defaults (page=1, pageSize=10). Non-numeric or < 1 -> ValidationFailure,
    never a silent clamp. Empty strings count as not supplied.
    """
    page = page or None
    page_size = page_size or None
    if page is None and page_size is None:
        return None

    parsed_page = DEFAULT_PAGE if page is None else _parse_positive(page)
    parsed_size = DEFAULT_PAGE_SIZE if page_size is None else _parse_positive(page_size)
    if parsed_page is None or parsed_size is None:
        raise ValidationFailure("Invalid pagination parameters")
    return Page(parsed_page, parsed_size)


def parse_order(raw: str | None) -> SortOrder:
    """``asc`` sorts oldest first; anything else (including nothing) is ``desc``."""
    return SortOrder.ASC if raw == SortOrder.ASC.value else SortOrder.DESC


def sort_entries(entries: Sequence[Entry], order: SortOrder) -> list[Entry]:
    return sorted(entries, key=lambda e: e.created_at, reverse=order == SortOrder.DESC)
