"""Website store backed by the Firestore REST API."""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests

from .categories import category_key
from .models import PageCursor, SitemapEntry, SortOrder, WebsiteRecord
from .store import StoreError, check_cursor

logger = logging.getLogger(__name__)

API_ROOT = "https://firestore.googleapis.com/v1"
LIST_PAGE_SIZE = 300

_SORT_FIELDS = {
    SortOrder.LATEST: "uploadedAt",
    SortOrder.POPULAR: "views",
}


def to_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp, trimming nanoseconds Python cannot hold."""
    if not value:
        return None
    text = value.replace("Z", "+00:00")
    text = re.sub(r"(\.\d{6})\d+", r"\1", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def decode_value(value: Dict[str, Any]) -> Any:
    """Convert a typed Firestore value into a plain Python value."""
    if "nullValue" in value:
        return None
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "timestampValue" in value:
        return to_datetime(value["timestampValue"])
    if "referenceValue" in value:
        return value["referenceValue"]
    if "arrayValue" in value:
        return [decode_value(item) for item in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    logger.debug("Unsupported Firestore value: %s", value)
    return None


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {name: decode_value(value) for name, value in fields.items()}


def document_id(name: str) -> str:
    return name.rsplit("/", 1)[-1]


def document_to_record(document: Dict[str, Any]) -> WebsiteRecord:
    """Map a Firestore document resource onto a website record."""
    fields = decode_fields(document.get("fields", {}))

    uploaded_at = fields.get("uploadedAt")
    if isinstance(uploaded_at, str):
        uploaded_at = to_datetime(uploaded_at)
    if uploaded_at is None:
        uploaded_at = to_datetime(document.get("createTime")) or datetime.min.replace(
            tzinfo=timezone.utc
        )

    updated_at = fields.get("updatedAt")
    if isinstance(updated_at, str):
        updated_at = to_datetime(updated_at)
    if updated_at is None:
        updated_at = to_datetime(document.get("updateTime"))

    social_links = fields.get("socialLinks") or {}
    popularity = fields.get("popularity")
    return WebsiteRecord(
        id=document_id(document["name"]),
        name=fields.get("name") or "",
        video_url=fields.get("videoUrl") or "",
        url=fields.get("url") or "",
        uploaded_at=uploaded_at,
        views=int(fields.get("views") or 0),
        categories=[str(item) for item in fields.get("categories") or [] if item],
        built_with=fields.get("builtWith"),
        social_links={str(k): str(v) for k, v in social_links.items() if v},
        updated_at=updated_at,
        popularity=int(popularity) if popularity is not None else None,
    )


class FirestoreWebsiteStore:
    """Website store talking to Firestore over HTTPS."""

    def __init__(
        self,
        project_id: str,
        api_key: Optional[str] = None,
        collection: str = "websites",
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        if not project_id:
            raise ValueError("A Firestore project id is required.")
        self._project_id = project_id
        self._api_key = api_key
        self._collection = collection
        self._session = session or requests.Session()
        self._timeout = timeout

    @property
    def database_path(self) -> str:
        return f"projects/{self._project_id}/databases/(default)/documents"

    def _document_name(self, website_id: str) -> str:
        return f"{self.database_path}/{self._collection}/{website_id}"

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Any:
        url = f"{API_ROOT}/{path}"
        query = dict(params or {})
        if self._api_key:
            query["key"] = self._api_key

        try:
            response = self._session.request(
                method, url, params=query, json=payload, timeout=self._timeout
            )
            if allow_missing and response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise StoreError(f"Firestore request {method} {path} failed: {exc}") from exc
        except ValueError as exc:
            raise StoreError(f"Firestore returned invalid JSON for {path}") from exc

    def _structured_query(
        self,
        category: Optional[str],
        sort_order: SortOrder,
        page_size: int,
        after_cursor: Optional[PageCursor],
    ) -> Dict[str, Any]:
        sort_field = _SORT_FIELDS[sort_order]
        query: Dict[str, Any] = {
            "from": [{"collectionId": self._collection}],
            "orderBy": [
                {"field": {"fieldPath": sort_field}, "direction": "DESCENDING"},
                {"field": {"fieldPath": "__name__"}, "direction": "DESCENDING"},
            ],
            "limit": page_size,
        }
        if category:
            query["where"] = {
                "fieldFilter": {
                    "field": {"fieldPath": "categories"},
                    "op": "ARRAY_CONTAINS",
                    "value": {"stringValue": category_key(category)},
                }
            }
        if after_cursor is not None:
            value_type, raw_value, name = after_cursor.position
            query["startAt"] = {
                "values": [{value_type: raw_value}, {"referenceValue": name}],
                "before": False,
            }
        return query

    def query(
        self,
        category: Optional[str],
        sort_order: SortOrder,
        page_size: int,
        after_cursor: Optional[PageCursor] = None,
    ) -> Tuple[List[WebsiteRecord], Optional[PageCursor]]:
        check_cursor(after_cursor, category, sort_order)
        if page_size <= 0:
            raise ValueError("page_size must be positive.")

        body = {
            "structuredQuery": self._structured_query(
                category, sort_order, page_size, after_cursor
            )
        }
        rows = self._request("POST", f"{self.database_path}:runQuery", payload=body)

        documents = [row["document"] for row in rows or [] if "document" in row]
        records: List[WebsiteRecord] = []
        for document in documents:
            try:
                records.append(document_to_record(document))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "Skipping malformed document %s: %s", document.get("name"), exc
                )

        logger.debug(
            "Firestore query category=%s sort=%s returned %d documents",
            category,
            sort_order.value,
            len(documents),
        )

        if not documents or len(documents) < page_size:
            return records, None

        last = documents[-1]
        sort_value = last.get("fields", {}).get(_SORT_FIELDS[sort_order])
        if not sort_value:
            logger.warning("Last document %s lacks the sort field", last.get("name"))
            return records, None
        value_type, raw_value = next(iter(sort_value.items()))
        cursor = PageCursor(
            category, sort_order, (value_type, raw_value, last["name"])
        )
        return records, cursor

    def get_by_id(self, website_id: str) -> Optional[WebsiteRecord]:
        document = self._request(
            "GET", self._document_name(website_id), allow_missing=True
        )
        if document is None:
            return None
        try:
            return document_to_record(document)
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"Malformed website document {website_id}: {exc}") from exc

    def increment_views(self, website_id: str) -> None:
        body = {
            "writes": [
                {
                    "transform": {
                        "document": self._document_name(website_id),
                        "fieldTransforms": [
                            {"fieldPath": "views", "increment": {"integerValue": "1"}}
                        ],
                    },
                    "currentDocument": {"exists": True},
                }
            ]
        }
        self._request("POST", f"{self.database_path}:commit", payload=body)

    def _list_documents(self, field_paths: List[str]) -> List[Dict[str, Any]]:
        documents: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            params: Dict[str, Any] = {
                "pageSize": LIST_PAGE_SIZE,
                "mask.fieldPaths": field_paths,
            }
            if page_token:
                params["pageToken"] = page_token
            payload = self._request(
                "GET", f"{self.database_path}/{self._collection}", params=params
            )
            documents.extend(payload.get("documents", []))
            page_token = payload.get("nextPageToken")
            if not page_token:
                break
        logger.debug("Listed %d documents from %s", len(documents), self._collection)
        return documents

    def get_category_counts(self) -> Dict[str, int]:
        counts: Counter = Counter()
        for document in self._list_documents(["categories"]):
            fields = decode_fields(document.get("fields", {}))
            for label in set(fields.get("categories") or []):
                if label:
                    counts[str(label)] += 1
        return dict(sorted(counts.items()))

    def list_all_for_sitemap(self) -> List[SitemapEntry]:
        entries = []
        for document in self._list_documents(["updatedAt"]):
            fields = decode_fields(document.get("fields", {}))
            updated_at = fields.get("updatedAt")
            if isinstance(updated_at, str):
                updated_at = to_datetime(updated_at)
            entries.append(
                SitemapEntry(
                    id=document_id(document["name"]),
                    updated_at=updated_at or to_datetime(document.get("updateTime")),
                )
            )
        return entries
