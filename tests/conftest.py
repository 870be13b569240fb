"""
Pytest configuration for sqlblob tests.

The tests need no services: the text table lives in an in-memory SQLite database
behind a connection double with the query interface of sqlblob.Connection, and
external stores are file-protocol stores under tmp_path.
"""

import logging
import sqlite3

import pytest

import sqlblob
from sqlblob.envelope import deflate
from sqlblob.errors import QueryError
from sqlblob.settings import BlobStoreSettings

logger = logging.getLogger(__name__)

TEXT_TABLE_DDL = """
    CREATE TABLE `{table}` (
        old_id INTEGER PRIMARY KEY AUTOINCREMENT,
        old_text BLOB NOT NULL,
        old_flags BLOB NOT NULL
    )
    """


class SqliteConnection:
    """Connection double running the queries of SqlRowStore against SQLite."""

    def __init__(self, database="sqlblob_test"):
        self.database = database
        self.queries = []
        self._conn = sqlite3.connect(":memory:")

    def query(self, query, args=()):
        self.queries.append(query)
        try:
            return self._conn.execute(query.replace("%s", "?"), args)
        except sqlite3.Error as e:
            raise QueryError(str(e), query) from e

    def close(self):
        self._conn.close()


# --- Row stores ---


@pytest.fixture
def sqlite_connection():
    connection = SqliteConnection()
    connection.query(TEXT_TABLE_DDL.format(table="text"))
    yield connection
    connection.close()


@pytest.fixture
def sql_row_store(sqlite_connection):
    return sqlblob.SqlRowStore(sqlite_connection, "text")


@pytest.fixture
def memory_row_store():
    return sqlblob.MemoryRowStore("testwiki")


# --- Caches ---


@pytest.fixture
def memory_cache():
    return sqlblob.MemoryCache()


@pytest.fixture
def cache_dir(tmp_path):
    path = tmp_path / "cache"
    path.mkdir()
    return path


# --- External stores ---


@pytest.fixture
def external_dir(tmp_path):
    """Directory of the ForTesting external store, holding cluster1/12345."""
    path = tmp_path / "external"
    (path / "cluster1").mkdir(parents=True)
    (path / "cluster1" / "12345").write_bytes(deflate(b"AAAABBAAA"))
    return path


@pytest.fixture
def external_access(external_dir):
    return sqlblob.ExternalStoreAccess(
        {"ForTesting": {"protocol": "file", "location": str(external_dir)}},
        write_locations=["ForTesting://cluster1"],
    )


# --- Blob stores ---


@pytest.fixture
def blob_settings():
    return BlobStoreSettings()


@pytest.fixture
def blob_store(memory_row_store, external_access, memory_cache, blob_settings):
    return sqlblob.SqlBlobStore(memory_row_store, external_access, memory_cache, settings=blob_settings)


@pytest.fixture
def sql_blob_store(sql_row_store, external_access, blob_settings):
    return sqlblob.SqlBlobStore(sql_row_store, external_access, sqlblob.MemoryCache(), settings=blob_settings)
