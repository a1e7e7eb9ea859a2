"""Paginated, deduplicated website feed."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from .detail import ViewRecorder
from .models import FeedPhase, PageCursor, SortOrder, WebsiteRecord
from .store import StoreError, WebsiteStore

logger = logging.getLogger(__name__)

PAGE_SIZE = 12
ERROR_MESSAGE = "Failed to load websites. Please try again later."

_BUSY_PHASES = (FeedPhase.LOADING_INITIAL, FeedPhase.LOADING_MORE)


@dataclass(frozen=True)
class FeedQuery:
    """Tag identifying which reset a request belongs to."""

    category: Optional[str]
    sort_order: SortOrder
    generation: int


@dataclass(frozen=True)
class FeedRequest:
    query: FeedQuery
    cursor: Optional[PageCursor]
    append: bool


@dataclass
class FeedState:
    """Everything the presentation layer needs to draw a feed."""

    items: List[WebsiteRecord] = field(default_factory=list)
    cursor: Optional[PageCursor] = None
    exhausted: bool = False
    phase: FeedPhase = FeedPhase.IDLE
    error: Optional[StoreError] = None
    category: Optional[str] = None
    sort_order: SortOrder = SortOrder.LATEST


class FeedLoader:
    """Loads pages of websites for one (category, sort order) view at a time.

    All methods are meant to be called from a single event loop. The store
    call runs in an executor and is the only point where a coroutine
    suspends, so the phase checks in ``load_more`` are enough to keep a
    single fetch in flight.
    """

    def __init__(
        self,
        store: WebsiteStore,
        page_size: int = PAGE_SIZE,
        on_change: Optional[Callable[[FeedState], None]] = None,
        recorder: Optional[ViewRecorder] = None,
        executor: Optional[Executor] = None,
    ):
        if page_size <= 0:
            raise ValueError("page_size must be positive.")
        self._store = store
        self._page_size = page_size
        self._on_change = on_change
        self._owns_recorder = recorder is None
        self._recorder = recorder or ViewRecorder(store, executor=executor)
        self._executor = executor
        self._state = FeedState()
        self._generation = 0

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def items(self) -> List[WebsiteRecord]:
        return list(self._state.items)

    @property
    def phase(self) -> FeedPhase:
        return self._state.phase

    @property
    def exhausted(self) -> bool:
        return self._state.exhausted

    @property
    def error(self) -> Optional[StoreError]:
        return self._state.error

    @property
    def error_message(self) -> str:
        return ERROR_MESSAGE if self._state.phase == FeedPhase.ERROR else ""

    @property
    def cursor(self) -> Optional[PageCursor]:
        return self._state.cursor

    @property
    def category(self) -> Optional[str]:
        return self._state.category

    @property
    def sort_order(self) -> SortOrder:
        return self._state.sort_order

    @property
    def is_loading(self) -> bool:
        return self._state.phase in _BUSY_PHASES

    @property
    def state(self) -> FeedState:
        """Return a snapshot of the current state."""
        return dataclasses.replace(self._state, items=list(self._state.items))

    async def reset(
        self, category: Optional[str] = None, sort_order: SortOrder = SortOrder.LATEST
    ) -> None:
        """Drop everything loaded so far and fetch the first page of a query."""
        self._generation += 1
        self._state = FeedState(
            category=category,
            sort_order=SortOrder(sort_order),
            phase=FeedPhase.LOADING_INITIAL,
        )
        logger.info(
            "Loading feed category=%s sort=%s (generation %d)",
            category,
            self._state.sort_order.value,
            self._generation,
        )
        self._notify()
        await self._fetch(FeedRequest(self._current_query(), cursor=None, append=False))

    async def load_more(self) -> bool:
        """Fetch the next page unless a fetch is running or the feed is exhausted.

        Returns True when a fetch was issued.
        """
        state = self._state
        if state.phase in _BUSY_PHASES:
            logger.debug("Skipping load_more: already %s", state.phase.value)
            return False
        if state.exhausted:
            logger.debug("Skipping load_more: feed exhausted")
            return False

        state.phase = FeedPhase.LOADING_MORE
        state.error = None
        self._notify()
        await self._fetch(
            FeedRequest(self._current_query(), cursor=state.cursor, append=True)
        )
        return True

    def on_page_received(
        self,
        request: FeedRequest,
        records: Iterable[WebsiteRecord],
        next_cursor: Optional[PageCursor],
    ) -> bool:
        """Merge a fetched page into the feed. Returns False for stale requests."""
        if not self._is_current(request):
            logger.debug("Discarding stale page for %s", request.query)
            return False

        state = self._state
        records = list(records)

        if not records:
            state.exhausted = True
            state.phase = FeedPhase.IDLE
            logger.info("Feed exhausted after %d items", len(state.items))
            self._notify()
            return True

        if len(records) < self._page_size:
            state.exhausted = True

        base = state.items if request.append else []
        seen = {item.id for item in base}
        fresh: List[WebsiteRecord] = []
        for record in records:
            if record.id in seen:
                continue
            seen.add(record.id)
            fresh.append(record)

        if fresh:
            state.items = base + fresh
        else:
            # The store repeated records we already have.
            logger.warning(
                "Page of %d records contained no new websites; treating feed as exhausted",
                len(records),
            )
            state.exhausted = True

        state.cursor = next_cursor
        state.phase = FeedPhase.IDLE
        logger.debug(
            "Merged %d new records (%d total, exhausted=%s)",
            len(fresh),
            len(state.items),
            state.exhausted,
        )
        self._notify()
        return True

    def on_page_failed(self, request: FeedRequest, error: StoreError) -> bool:
        """Record a failed fetch. Returns False for stale requests."""
        if not self._is_current(request):
            logger.debug("Discarding stale failure for %s: %s", request.query, error)
            return False

        logger.error("Failed to load websites for %s: %s", request.query, error)
        self._state.phase = FeedPhase.ERROR
        self._state.error = error
        self._notify()
        return True

    def record_view(self, website_id: str) -> Future:
        """Count one detail visit without waiting for the store."""
        return self._recorder.record(website_id)

    def close(self) -> None:
        """Release the view recorder created by this loader."""
        if self._owns_recorder:
            self._recorder.close()

    def _current_query(self) -> FeedQuery:
        return FeedQuery(
            category=self._state.category,
            sort_order=self._state.sort_order,
            generation=self._generation,
        )

    def _is_current(self, request: FeedRequest) -> bool:
        return request.query == self._current_query()

    async def _fetch(self, request: FeedRequest) -> None:
        loop = asyncio.get_running_loop()
        try:
            records, next_cursor = await loop.run_in_executor(
                self._executor,
                self._store.query,
                request.query.category,
                request.query.sort_order,
                self._page_size,
                request.cursor,
            )
        except asyncio.CancelledError:
            if self._is_current(request) and self._state.phase in _BUSY_PHASES:
                logger.info("Fetch for %s was cancelled", request.query)
                self._state.phase = FeedPhase.IDLE
                self._notify()
            raise
        except StoreError as exc:
            self.on_page_failed(request, exc)
            return
        except Exception as exc:
            self.on_page_failed(request, StoreError(f"Unexpected store failure: {exc}"))
            raise
        self.on_page_received(request, records, next_cursor)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.state)
