"""High-level orchestration for the gridrr command line."""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from .categories import category_from_slug, group_category_counts, parse_categories_config
from .db import SqlWebsiteStore
from .detail import VIEW_WORKERS, DetailView, ViewRecorder
from .feed import PAGE_SIZE, FeedLoader
from .firestore import FirestoreWebsiteStore
from .models import CategoryGroup, CategoryGroupConfig, FeedPhase, SortOrder, WebsiteRecord
from .previews import PreviewRegistry
from .renderers import (
    build_categories_text,
    build_feed_html,
    build_feed_text,
    build_website_text,
)
from .store import WebsiteStore

logger = logging.getLogger(__name__)

COMMANDS = ("feed", "site", "categories")
OUTPUT_FORMATS = ("text", "html", "json")


@dataclass
class RunConfig:
    """Runtime options for executing one command."""

    command: str = "feed"
    category: Optional[str] = None
    sort_order: str = SortOrder.LATEST.value
    pages: int = 1
    output_format: str = "text"
    website_id: Optional[str] = None
    page_size: int = PAGE_SIZE
    site_url: str = "https://gridrr.com"
    ref_tag: str = "gridrr"
    categories_file: Optional[str] = None
    store_backend: str = "sql"
    database_connection_string: Optional[str] = None
    firestore_project_id: Optional[str] = None
    firestore_api_key_env: str = "FIRESTORE_API_KEY"
    firestore_collection: str = "websites"
    store_timeout: float = 10.0
    load_websites_path: Optional[str] = None


@dataclass
class RunResult:
    """Returned data after executing a command."""

    output_text: str
    payload: Any
    success: bool = True


def _load_websites_from_file(path: str) -> List[WebsiteRecord]:
    location = Path(path)
    try:
        payload = json.loads(location.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise RuntimeError(f"Website snapshot not found: {location}") from exc
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"Website snapshot is not valid JSON: {location}") from exc

    if not isinstance(payload, list):
        raise RuntimeError("Website snapshot must contain a JSON array.")

    websites: List[WebsiteRecord] = []
    for item in payload:
        if not isinstance(item, dict):
            raise RuntimeError("Website snapshot must contain objects only.")
        websites.append(WebsiteRecord.from_dict(item))

    logger.info("Loaded %d websites from %s", len(websites), location)
    return websites


def build_store(config: RunConfig) -> WebsiteStore:
    """Create the website store selected by the configuration."""
    if config.store_backend == "firestore":
        if config.load_websites_path:
            raise ValueError("--load-websites is only supported with the sql store.")
        api_key = os.environ.get(config.firestore_api_key_env)
        if not api_key:
            logger.warning(
                "%s is not set; querying Firestore without an API key.",
                config.firestore_api_key_env,
            )
        return FirestoreWebsiteStore(
            project_id=config.firestore_project_id or "",
            api_key=api_key,
            collection=config.firestore_collection,
            timeout=config.store_timeout,
        )

    if config.store_backend != "sql":
        raise ValueError(f"Unsupported store backend: {config.store_backend}")

    connection_string = config.database_connection_string
    if not connection_string:
        logger.warning("No connection string provided; using an in-memory database.")
        connection_string = "sqlite:///:memory:"
    store = SqlWebsiteStore.from_connection_string(connection_string)
    if config.load_websites_path:
        store.load(_load_websites_from_file(config.load_websites_path))
    return store


async def _collect_feed(
    store: WebsiteStore,
    category: Optional[str],
    sort_order: SortOrder,
    pages: int,
    page_size: int,
) -> FeedLoader:
    loader = FeedLoader(store, page_size=page_size)
    await loader.reset(category, sort_order)
    loaded = 1
    while loaded < pages and not loader.exhausted and loader.phase == FeedPhase.IDLE:
        if not await loader.load_more():
            break
        loaded += 1
    logger.info(
        "Collected %d websites over %d page(s) (exhausted=%s)",
        len(loader.items),
        loaded,
        loader.exhausted,
    )
    return loader


def _preview_order(items: List[WebsiteRecord]) -> List[str]:
    """Register a video handle per card and return the order they are primed in."""
    registry = PreviewRegistry()
    for website in items:
        registry.register(website.id, f"video-{website.id}")
    order: List[str] = []
    primed = registry.prime_all(order.append)
    logger.debug("Queued %d preview videos", primed)
    return order


def _run_feed(store: WebsiteStore, config: RunConfig) -> RunResult:
    if config.pages <= 0:
        raise ValueError("--pages must be positive.")
    sort_order = SortOrder(config.sort_order)
    category = category_from_slug(config.category) if config.category else None
    title = f"{category} Websites" if category else None

    loader = asyncio.run(
        _collect_feed(store, category, sort_order, config.pages, config.page_size)
    )
    state = loader.state
    success = state.phase != FeedPhase.ERROR

    if config.output_format == "json":
        payload: Any = [website.to_dict() for website in state.items]
        output_text = json.dumps(payload, indent=2, ensure_ascii=False)
    elif config.output_format == "html":
        payload = state
        output_text = build_feed_html(
            state,
            loader.error_message,
            title=title,
            site_url=config.site_url,
            preview_order=_preview_order(state.items),
        )
    else:
        payload = state
        output_text = build_feed_text(
            state, loader.error_message, title=title, site_url=config.site_url
        )
    return RunResult(output_text=output_text, payload=payload, success=success)


def _run_site(store: WebsiteStore, config: RunConfig) -> RunResult:
    if not config.website_id:
        raise ValueError("A website id is required.")
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=VIEW_WORKERS, thread_name_prefix="gridrr-views"
    ) as executor:
        view = DetailView(store, config.website_id, ViewRecorder(store, executor))
        website = view.load()

    if config.output_format == "json":
        output_text = json.dumps(website.to_dict(), indent=2, ensure_ascii=False)
    else:
        output_text = build_website_text(website, ref_tag=config.ref_tag)
    return RunResult(output_text=output_text, payload=website)


def _load_category_groups(config: RunConfig) -> Optional[List[CategoryGroupConfig]]:
    if not config.categories_file:
        return None
    return parse_categories_config(config.categories_file)


def _run_categories(store: WebsiteStore, config: RunConfig) -> RunResult:
    counts = store.get_category_counts()
    catalog = _load_category_groups(config)
    if catalog is None:
        groups = [CategoryGroup(name="Categories", categories=sorted(counts.items()))]
    else:
        groups = group_category_counts(counts, catalog)

    if config.output_format == "json":
        payload: Any = {group.name: dict(group.categories) for group in groups}
        output_text = json.dumps(payload, indent=2, ensure_ascii=False)
    else:
        payload = groups
        output_text = build_categories_text(groups)
    return RunResult(output_text=output_text, payload=payload)


def execute(config: RunConfig, store: Optional[WebsiteStore] = None) -> RunResult:
    """Run the requested command and return the result payload."""
    if config.command not in COMMANDS:
        raise ValueError(f"Unknown command: {config.command}")
    if config.output_format not in OUTPUT_FORMATS:
        raise ValueError(f"Unknown output format: {config.output_format}")

    if store is None:
        store = build_store(config)

    if config.command == "site":
        return _run_site(store, config)
    if config.command == "categories":
        return _run_categories(store, config)
    return _run_feed(store, config)
