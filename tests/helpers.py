"""Shared builders and fakes for the test-suite."""

import threading
from datetime import datetime, timedelta, timezone

from gridrr.models import PageCursor, SitemapEntry, SortOrder, WebsiteRecord

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_website(index, **overrides):
    data = dict(
        id=f"site-{index:03d}",
        name=f"Site {index}",
        video_url=f"https://cdn.example.com/{index}.mp4",
        url=f"https://site{index}.example.com",
        uploaded_at=BASE_TIME + timedelta(hours=index),
        views=index,
    )
    data.update(overrides)
    return WebsiteRecord(**data)


def make_page(start, count):
    return [make_website(index) for index in range(start, start + count)]


def cursor(label, category=None, sort_order=SortOrder.LATEST):
    return PageCursor(category, sort_order, (label,))


class Gate:
    """A scripted response that is held back until ``open`` is called."""

    def __init__(self, result):
        self.result = result
        self._event = threading.Event()

    def open(self):
        self._event.set()

    def wait(self):
        if not self._event.wait(timeout=5):
            raise AssertionError("gate was never opened")
        return self.result


class FakeStore:
    """Website store returning scripted pages.

    ``pages`` is either a list consumed in call order, or a dict mapping a
    category to its own list. Entries are ``(records, cursor)`` tuples,
    exceptions to raise, or ``Gate`` objects wrapping either.
    """

    def __init__(self, pages=None, websites=None):
        self.pages = pages if pages is not None else []
        self.websites = {website.id: website for website in websites or []}
        self.calls = []
        self.views = []
        self.view_error = None
        self._lock = threading.Lock()

    def query(self, category, sort_order, page_size, after_cursor=None):
        with self._lock:
            self.calls.append((category, sort_order, page_size, after_cursor))
            queue = self.pages[category] if isinstance(self.pages, dict) else self.pages
            result = queue.pop(0)
        if isinstance(result, Gate):
            result = result.wait()
        if isinstance(result, Exception):
            raise result
        records, next_cursor = result
        return list(records), next_cursor

    def get_by_id(self, website_id):
        result = self.websites.get(website_id)
        if isinstance(result, Exception):
            raise result
        return result

    def increment_views(self, website_id):
        if self.view_error is not None:
            raise self.view_error
        with self._lock:
            self.views.append(website_id)

    def get_category_counts(self):
        counts = {}
        for website in self.websites.values():
            for category in website.categories:
                counts[category] = counts.get(category, 0) + 1
        return counts

    def list_all_for_sitemap(self):
        return [
            SitemapEntry(id=website.id, updated_at=website.updated_at)
            for website in self.websites.values()
        ]
