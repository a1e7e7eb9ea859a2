"""Website detail lookups and view counting."""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Optional

from .models import WebsiteRecord
from .store import NotFound, StoreError, WebsiteStore

logger = logging.getLogger(__name__)

DETAIL_ERROR_MESSAGE = "Failed to load website details"
VIEW_WORKERS = 4


class ViewRecorder:
    """Best-effort view counter running increments on a thread pool.

    Pass an executor to share a pool owned by the caller. Without one the
    recorder starts its own pool on first use and shuts it down in
    ``close``.
    """

    def __init__(
        self,
        store: WebsiteStore,
        executor: Optional[concurrent.futures.Executor] = None,
    ):
        self._store = store
        self._executor = executor
        self._owned: Optional[concurrent.futures.ThreadPoolExecutor] = None

    def __enter__(self) -> "ViewRecorder":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _get_executor(self) -> concurrent.futures.Executor:
        if self._executor is not None:
            return self._executor
        if self._owned is None:
            self._owned = concurrent.futures.ThreadPoolExecutor(
                max_workers=VIEW_WORKERS, thread_name_prefix="gridrr-views"
            )
        return self._owned

    def record(self, website_id: str) -> concurrent.futures.Future:
        """Schedule a view increment and return the background future."""
        return self._get_executor().submit(self._increment, website_id)

    def close(self) -> None:
        """Wait for pending increments on the recorder's own pool."""
        if self._owned is not None:
            self._owned.shutdown(wait=True)
            self._owned = None

    def _increment(self, website_id: str) -> bool:
        try:
            self._store.increment_views(website_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to record view for %s: %s", website_id, exc)
            return False
        logger.debug("Recorded view for %s", website_id)
        return True


class DetailView:
    """State for one visit to a website's detail page."""

    def __init__(
        self,
        store: WebsiteStore,
        website_id: str,
        recorder: ViewRecorder,
    ):
        self.website_id = website_id
        self.website: Optional[WebsiteRecord] = None
        self.error: str = ""
        self.is_loading = False
        self.view_future: Optional[concurrent.futures.Future] = None
        self._store = store
        self._recorder = recorder
        self._view_recorded = False

    def load(self) -> WebsiteRecord:
        """Fetch the website and count the visit once."""
        self.is_loading = True
        try:
            record = self._store.get_by_id(self.website_id)
        except StoreError:
            self.error = DETAIL_ERROR_MESSAGE
            raise
        finally:
            self.is_loading = False

        if record is None:
            self.error = DETAIL_ERROR_MESSAGE
            raise NotFound(self.website_id)

        self.website = record
        self.error = ""
        if not self._view_recorded:
            self._view_recorded = True
            self.view_future = self._recorder.record(record.id)
        return record
