"""Website store contract shared by the feed loader and detail views."""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Tuple

from .models import PageCursor, SitemapEntry, SortOrder, WebsiteRecord


class StoreError(Exception):
    """Raised when the website store cannot be reached or queried."""


class NotFound(LookupError):
    """Raised when a website lookup returns nothing."""

    def __init__(self, website_id: str):
        super().__init__(f"Website not found: {website_id}")
        self.website_id = website_id


class WebsiteStore(Protocol):
    """Minimal protocol for website catalog backends."""

    def query(
        self,
        category: Optional[str],
        sort_order: SortOrder,
        page_size: int,
        after_cursor: Optional[PageCursor] = None,
    ) -> Tuple[List[WebsiteRecord], Optional[PageCursor]]:
        """Return one page of records and the cursor for the next page."""

    def get_by_id(self, website_id: str) -> Optional[WebsiteRecord]:
        """Return a single record or None."""

    def increment_views(self, website_id: str) -> None:
        """Bump the view counter of a record by one."""

    def get_category_counts(self) -> Dict[str, int]:
        """Return the number of websites per category name."""

    def list_all_for_sitemap(self) -> List[SitemapEntry]:
        """Return every website id with its last update time."""


def check_cursor(
    cursor: Optional[PageCursor], category: Optional[str], sort_order: SortOrder
) -> None:
    """Reject cursors issued for a different query."""
    if cursor is not None and not cursor.matches(category, sort_order):
        raise StoreError(
            f"Cursor for ({cursor.category!r}, {cursor.sort_order.value}) cannot be "
            f"used with ({category!r}, {sort_order.value})"
        )
