"""Tests for the SQL website store."""

from datetime import timedelta

import pytest

from gridrr import db
from gridrr.models import PageCursor, SortOrder
from gridrr.store import StoreError

from helpers import BASE_TIME, make_website


def test_latest_pages_walk_the_catalog_without_overlap(sql_store):
    sql_store.load(make_website(index) for index in range(30))

    seen = []
    cursor = None
    page_sizes = []
    while True:
        records, cursor = sql_store.query(None, SortOrder.LATEST, 12, cursor)
        page_sizes.append(len(records))
        seen.extend(record.id for record in records)
        if cursor is None:
            break

    assert page_sizes == [12, 12, 6]
    assert seen == [make_website(index).id for index in reversed(range(30))]


def test_equal_timestamps_are_ordered_by_id(sql_store):
    sql_store.load(
        make_website(index, uploaded_at=BASE_TIME) for index in range(5)
    )

    first, cursor = sql_store.query(None, SortOrder.LATEST, 2)
    second, cursor = sql_store.query(None, SortOrder.LATEST, 2, cursor)
    third, cursor = sql_store.query(None, SortOrder.LATEST, 2, cursor)

    assert [r.id for r in first + second + third] == [
        "site-004",
        "site-003",
        "site-002",
        "site-001",
        "site-000",
    ]
    assert cursor is None


def test_popular_uses_explicit_popularity_before_views(sql_store):
    sql_store.load(
        [
            make_website(1, views=50),
            make_website(2, views=10, popularity=500),
            make_website(3, views=80),
        ]
    )

    records, _ = sql_store.query(None, SortOrder.POPULAR, 12)

    assert [record.id for record in records] == ["site-002", "site-003", "site-001"]


def test_popular_cursor_continues_after_last_score(sql_store):
    sql_store.load(make_website(index, views=index % 3) for index in range(7))

    first, cursor = sql_store.query(None, SortOrder.POPULAR, 3)
    rest, end = sql_store.query(None, SortOrder.POPULAR, 10, cursor)

    ids = [record.id for record in first + rest]
    assert len(ids) == len(set(ids)) == 7
    scores = [record.popularity_score for record in first + rest]
    assert scores == sorted(scores, reverse=True)
    assert end is None


def test_category_filter_is_case_insensitive(sql_store):
    sql_store.load(
        [
            make_website(1, categories=["Fintech", "Dark"]),
            make_website(2, categories=["Portfolio"]),
            make_website(3, categories=["fintech"]),
        ]
    )

    records, cursor = sql_store.query("FINTECH", SortOrder.LATEST, 12)

    assert [record.id for record in records] == ["site-003", "site-001"]
    assert cursor is None


def test_cursor_from_another_query_is_rejected(sql_store):
    foreign = PageCursor("dark", SortOrder.POPULAR, (3, "site-001"))

    with pytest.raises(StoreError):
        sql_store.query(None, SortOrder.LATEST, 12, foreign)


def test_get_by_id_round_trips_fields(sql_store):
    website = make_website(
        7,
        categories=["Agency", "Minimal"],
        built_with="Webflow",
        social_links={"twitter": "https://x.com/site7"},
        updated_at=BASE_TIME + timedelta(days=3),
    )
    sql_store.load([website])

    loaded = sql_store.get_by_id(website.id)

    assert loaded == website
    assert loaded.uploaded_at.tzinfo is not None
    assert sql_store.get_by_id("missing") is None


def test_upsert_replaces_categories(sql_store):
    sql_store.load([make_website(1, categories=["Agency", "Dark"])])
    sql_store.load([make_website(1, categories=["Dark", "Minimal"], name="Renamed")])

    loaded = sql_store.get_by_id("site-001")

    assert loaded.name == "Renamed"
    assert loaded.categories == ["Dark", "Minimal"]


def test_increment_views(sql_store):
    sql_store.load([make_website(1, views=4)])

    sql_store.increment_views("site-001")
    sql_store.increment_views("site-001")

    assert sql_store.get_by_id("site-001").views == 6
    with pytest.raises(StoreError):
        sql_store.increment_views("missing")


def test_category_counts(sql_store):
    sql_store.load(
        [
            make_website(1, categories=["Agency", "Dark"]),
            make_website(2, categories=["Dark"]),
            make_website(3, categories=[]),
        ]
    )

    assert sql_store.get_category_counts() == {"Agency": 1, "Dark": 2}


def test_sitemap_falls_back_to_upload_time(sql_store):
    updated = BASE_TIME + timedelta(days=10)
    sql_store.load([make_website(1, updated_at=updated), make_website(2)])

    entries = {entry.id: entry.updated_at for entry in sql_store.list_all_for_sitemap()}

    assert entries == {"site-001": updated, "site-002": make_website(2).uploaded_at}


def test_database_errors_become_store_errors():
    engine = db.init_engine("sqlite:///:memory:")
    store = db.SqlWebsiteStore(db.get_session_factory(engine))
    db.Base.metadata.drop_all(engine)

    with pytest.raises(StoreError):
        store.query(None, SortOrder.LATEST, 12)
    with pytest.raises(StoreError):
        store.get_by_id("site-001")
