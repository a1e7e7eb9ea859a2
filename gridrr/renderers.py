"""Rendering helpers for feed, detail and category outputs."""

from __future__ import annotations

from typing import List, Optional

from .feed import FeedState
from .models import CategoryGroup, WebsiteRecord
from .templating import get_environment


def _feed_context(
    state: FeedState, error_message: str, title: Optional[str], site_url: str
) -> dict:
    return {
        "items": state.items,
        "exhausted": state.exhausted,
        "phase": state.phase.value,
        "sort_order": state.sort_order.value,
        "category": state.category,
        "title": title or "Curated Website Design Inspiration",
        "error_message": error_message,
        "site_url": site_url.rstrip("/"),
    }


def build_feed_text(
    state: FeedState,
    error_message: str = "",
    title: Optional[str] = None,
    site_url: str = "",
) -> str:
    """Render the plain-text listing of a feed."""
    env = get_environment()
    template = env.get_template("feed.txt.j2")
    return template.render(**_feed_context(state, error_message, title, site_url))


def build_feed_html(
    state: FeedState,
    error_message: str = "",
    title: Optional[str] = None,
    site_url: str = "",
    preview_order: Optional[List[str]] = None,
) -> str:
    """Render the HTML card grid of a feed.

    ``preview_order`` lists the card video handles in the order the page
    should start their previews.
    """
    env = get_environment()
    template = env.get_template("feed.html.j2")
    context = _feed_context(state, error_message, title, site_url)
    context["preview_order"] = preview_order or []
    return template.render(**context)


def build_website_text(website: WebsiteRecord, ref_tag: str = "gridrr") -> str:
    """Render the detail page of a single website as text."""
    env = get_environment()
    template = env.get_template("website.txt.j2")
    return template.render(
        website=website,
        visit_url=website.referral_url(ref_tag),
        socials=website.social_platforms(),
    )


def build_categories_text(groups: List[CategoryGroup]) -> str:
    env = get_environment()
    template = env.get_template("categories.txt.j2")
    return template.render(groups=groups)
