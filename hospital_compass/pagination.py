from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    window: list[int]

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    def meta(self) -> dict:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total_items": self.total_items,
            "total_pages": self.total_pages,
            "window": self.window,
            "has_previous": self.has_previous,
            "has_next": self.has_next,
        }


def page_window(current: int, total_pages: int, max_visible: int = 5) -> list[int]:
    """
    Page numbers to show as controls, centred on ``current``.

    The window is shifted rather than shrunk near either end, so it holds
    ``min(max_visible, total_pages)`` pages. A single page needs no controls.
    """
    if total_pages <= 1:
        return []
    half = max_visible // 2
    start = max(1, current - half)
    end = min(total_pages, start + max_visible - 1)
    if end - start + 1 < max_visible:
        start = max(1, end - max_visible + 1)
    return list(range(start, end + 1))


def paginate(
    items: Sequence[T], page: int = 1, page_size: int = 5, max_visible: int = 5
) -> Page[T]:
    if page_size <= 0:
        raise ValueError("page_size must be positive")

    total_items = len(items)
    total_pages = max(1, math.ceil(total_items / page_size))
    page = min(max(1, page), total_pages)

    start = (page - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages,
        window=page_window(page, total_pages, max_visible),
    )
