"""Shared data models for gridrr."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SortOrder(str, Enum):
    """Ordering of a feed."""

    LATEST = "latest"
    POPULAR = "popular"


class FeedPhase(str, Enum):
    """Loading phase of a feed."""

    IDLE = "idle"
    LOADING_INITIAL = "loading_initial"
    LOADING_MORE = "loading_more"
    ERROR = "error"


@dataclass
class WebsiteRecord:
    """A catalog entry shown as a preview card."""

    id: str
    name: str
    video_url: str
    url: str
    uploaded_at: datetime
    views: int = 0
    categories: List[str] = field(default_factory=list)
    built_with: Optional[str] = None
    social_links: Dict[str, str] = field(default_factory=dict)
    updated_at: Optional[datetime] = None
    popularity: Optional[int] = None

    @property
    def popularity_score(self) -> int:
        if self.popularity is not None:
            return self.popularity
        return self.views

    def referral_url(self, ref: str = "gridrr") -> str:
        """Return the destination URL tagged with a referral parameter."""
        if not self.url:
            return "#"
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}ref={ref}"

    def social_platforms(self) -> List[Tuple[str, str]]:
        return [
            (platform[:1].upper() + platform[1:], link)
            for platform, link in self.social_links.items()
            if link
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "video_url": self.video_url,
            "url": self.url,
            "uploaded_at": self.uploaded_at.isoformat(),
            "views": self.views,
            "categories": list(self.categories),
            "built_with": self.built_with,
            "social_links": dict(self.social_links),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "popularity": self.popularity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WebsiteRecord":
        """Build a record from a snapshot dict produced by ``to_dict``."""
        try:
            website_id = str(data["id"])
            uploaded_raw = data["uploaded_at"]
        except KeyError as exc:
            raise ValueError(f"Website snapshot is missing field {exc}") from exc

        updated_raw = data.get("updated_at")
        popularity = data.get("popularity")
        return cls(
            id=website_id,
            name=data.get("name") or "",
            video_url=data.get("video_url") or "",
            url=data.get("url") or "",
            uploaded_at=_parse_timestamp(uploaded_raw),
            views=int(data.get("views") or 0),
            categories=list(data.get("categories") or []),
            built_with=data.get("built_with"),
            social_links=dict(data.get("social_links") or {}),
            updated_at=_parse_timestamp(updated_raw) if updated_raw else None,
            popularity=int(popularity) if popularity is not None else None,
        )


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class PageCursor:
    """Continuation token for a (category, sort order) query.

    Only the store that issued a cursor reads ``position``; everyone else
    passes it back untouched.
    """

    category: Optional[str]
    sort_order: SortOrder
    position: Tuple[Any, ...]

    def matches(self, category: Optional[str], sort_order: SortOrder) -> bool:
        return self.category == category and self.sort_order == sort_order


@dataclass
class SitemapEntry:
    id: str
    updated_at: Optional[datetime] = None


@dataclass
class CategoryGroupConfig:
    """A named group of categories from the catalog file."""

    name: str
    categories: List[str] = field(default_factory=list)


@dataclass
class CategoryGroup:
    """Category names with their website counts, for the browser."""

    name: str
    categories: List[Tuple[str, int]] = field(default_factory=list)
