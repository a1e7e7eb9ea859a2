import pytest

from gridrr import db


@pytest.fixture
def sql_store():
    """An in-memory SQL website store."""
    return db.SqlWebsiteStore.from_connection_string("sqlite:///:memory:")
