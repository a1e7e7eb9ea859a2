"""SQLAlchemy-backed website store used as a local mirror of the catalog."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    and_,
    create_engine,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, relationship, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import JSON

from .categories import category_key
from .models import PageCursor, SitemapEntry, SortOrder, WebsiteRecord
from .store import StoreError, check_cursor

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class WebsiteModel(Base):
    """A website in the catalog."""

    __tablename__ = "websites"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, default="")
    video_url = Column(String, nullable=False, default="")
    url = Column(String, nullable=False, default="")
    uploaded_at = Column(DateTime, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=True)
    views = Column(Integer, nullable=False, default=0)
    popularity = Column(Integer, nullable=True)
    built_with = Column(Text, nullable=True)
    social_links = Column(JSON, nullable=False, default=dict)

    categories = relationship(
        "WebsiteCategoryModel",
        cascade="all, delete-orphan",
        order_by="WebsiteCategoryModel.position",
        lazy="selectin",
    )


class WebsiteCategoryModel(Base):
    """Category label attached to a website."""

    __tablename__ = "website_categories"

    website_id = Column(String, ForeignKey("websites.id"), primary_key=True)
    key = Column(String, primary_key=True)
    label = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)


def init_engine(connection_string: Optional[str]) -> Optional[Engine]:
    """Initialize the database engine."""
    if not connection_string:
        return None

    logger.info("Initializing database connection: %s", connection_string)
    if connection_string in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection so executor threads see the same database.
        engine = create_engine(
            connection_string,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(connection_string)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory for the given engine."""
    return sessionmaker(bind=engine)


def _to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """Store timestamps as naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: WebsiteModel) -> WebsiteRecord:
    return WebsiteRecord(
        id=row.id,
        name=row.name,
        video_url=row.video_url,
        url=row.url,
        uploaded_at=_from_db_time(row.uploaded_at),
        views=row.views or 0,
        categories=[category.label for category in row.categories],
        built_with=row.built_with,
        social_links=dict(row.social_links or {}),
        updated_at=_from_db_time(row.updated_at),
        popularity=row.popularity,
    )


def upsert_website(session: Session, record: WebsiteRecord) -> None:
    """Insert or update a website in the local mirror."""
    existing = session.get(WebsiteModel, record.id)
    if existing is None:
        existing = WebsiteModel(id=record.id)
        session.add(existing)

    existing.name = record.name
    existing.video_url = record.video_url
    existing.url = record.url
    existing.uploaded_at = _to_db_time(record.uploaded_at)
    existing.updated_at = _to_db_time(record.updated_at)
    existing.views = record.views
    existing.popularity = record.popularity
    existing.built_with = record.built_with
    existing.social_links = dict(record.social_links)

    current = {category.key: category for category in existing.categories}
    categories = []
    for position, label in enumerate(record.categories):
        key = category_key(label)
        if not key or any(category.key == key for category in categories):
            continue
        category = current.get(key)
        if category is None:
            category = WebsiteCategoryModel(website_id=record.id, key=key)
        category.label = label
        category.position = position
        categories.append(category)
    existing.categories = categories

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise


class SqlWebsiteStore:
    """Website store over a relational database."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @classmethod
    def from_connection_string(cls, connection_string: str) -> "SqlWebsiteStore":
        engine = init_engine(connection_string)
        if engine is None:
            raise ValueError("A connection string is required for the SQL store.")
        return cls(get_session_factory(engine))

    def load(self, records: Iterable[WebsiteRecord]) -> int:
        """Seed the mirror with records, returning how many were written."""
        count = 0
        try:
            with self._session_factory() as session:
                for record in records:
                    upsert_website(session, record)
                    count += 1
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load websites: {exc}") from exc
        logger.info("Loaded %d websites into the local store", count)
        return count

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

        if sort_order == SortOrder.POPULAR:
            sort_key = func.coalesce(WebsiteModel.popularity, WebsiteModel.views)
        else:
            sort_key = WebsiteModel.uploaded_at

        stmt = select(WebsiteModel)
        if category:
            stmt = stmt.join(
                WebsiteCategoryModel,
                WebsiteCategoryModel.website_id == WebsiteModel.id,
            ).where(WebsiteCategoryModel.key == category_key(category))

        if after_cursor is not None:
            last_key, last_id = after_cursor.position
            if sort_order == SortOrder.LATEST:
                last_key = _to_db_time(last_key)
            stmt = stmt.where(
                or_(
                    sort_key < last_key,
                    and_(sort_key == last_key, WebsiteModel.id < last_id),
                )
            )

        stmt = stmt.order_by(sort_key.desc(), WebsiteModel.id.desc()).limit(page_size)

        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).scalars().all()
                records = [_to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreError(f"Website query failed: {exc}") from exc

        logger.debug(
            "Query category=%s sort=%s returned %d records",
            category,
            sort_order.value,
            len(records),
        )

        if len(records) < page_size:
            return records, None

        last = records[-1]
        if sort_order == SortOrder.POPULAR:
            position = (last.popularity_score, last.id)
        else:
            position = (last.uploaded_at, last.id)
        return records, PageCursor(category, sort_order, position)

    def get_by_id(self, website_id: str) -> Optional[WebsiteRecord]:
        try:
            with self._session_factory() as session:
                row = session.get(WebsiteModel, website_id)
                return _to_record(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(f"Website lookup failed: {exc}") from exc

    def increment_views(self, website_id: str) -> None:
        stmt = (
            update(WebsiteModel)
            .where(WebsiteModel.id == website_id)
            .values(views=WebsiteModel.views + 1)
        )
        try:
            with self._session_factory() as session:
                result = session.execute(stmt)
                session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to increment views: {exc}") from exc

        if result.rowcount == 0:
            raise StoreError(f"No website with id {website_id} to update")

    def get_category_counts(self) -> Dict[str, int]:
        stmt = (
            select(
                func.min(WebsiteCategoryModel.label),
                func.count(WebsiteCategoryModel.website_id),
            )
            .group_by(WebsiteCategoryModel.key)
            .order_by(func.min(WebsiteCategoryModel.label))
        )
        try:
            with self._session_factory() as session:
                return {label: count for label, count in session.execute(stmt)}
        except SQLAlchemyError as exc:
            raise StoreError(f"Category count query failed: {exc}") from exc

    def list_all_for_sitemap(self) -> List[SitemapEntry]:
        stmt = select(
            WebsiteModel.id, WebsiteModel.updated_at, WebsiteModel.uploaded_at
        ).order_by(WebsiteModel.id)
        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Sitemap listing failed: {exc}") from exc
        return [
            SitemapEntry(id=row.id, updated_at=_from_db_time(row.updated_at or row.uploaded_at))
            for row in rows
        ]

