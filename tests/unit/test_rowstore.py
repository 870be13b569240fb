"""Unit tests for row stores."""

from unittest.mock import MagicMock

import pymysql
import pytest

from sqlblob.errors import MissingTableError, RowStoreError
from sqlblob.flags import BlobFlags
from sqlblob.rowstore import MemoryRowStore, SqlRowStore, StoredRow


class TestMemoryRowStore:
    def test_insert_fetch(self):
        store = MemoryRowStore()
        first = store.insert_row(b"one", BlobFlags.UTF8)
        second = store.insert_row(b"two", "utf-8,gzip")
        assert (first, second) == (1, 2)
        assert len(store) == 2
        assert store.fetch_rows([second, 7]) == {2: StoredRow(2, b"two", BlobFlags.UTF8 | BlobFlags.GZIP)}

    def test_fetch_count(self):
        store = MemoryRowStore()
        store.fetch_rows([1, 2])
        store.fetch_rows([])
        assert store.fetch_count == 2

    def test_domain_id(self):
        assert MemoryRowStore().domain_id == "local"
        assert MemoryRowStore("testwiki").domain_id == "testwiki"


class TestSqlRowStore:
    """Test the text table adapter over the SQLite connection double."""

    def test_insert_fetch(self, sql_row_store):
        text_id = sql_row_store.insert_row(b"\x00binary\xff", BlobFlags.GZIP | BlobFlags.UTF8)
        assert text_id == 1
        row = sql_row_store.fetch_rows([text_id])[text_id]
        assert row == StoredRow(1, b"\x00binary\xff", BlobFlags.GZIP | BlobFlags.UTF8)

    def test_single_query_per_fetch(self, sql_row_store, sqlite_connection):
        ids = [sql_row_store.insert_row(text.encode(), BlobFlags.UTF8) for text in "ABCD"]
        sqlite_connection.queries.clear()
        rows = sql_row_store.fetch_rows(ids + [1000])
        assert sorted(rows) == ids
        assert len(sqlite_connection.queries) == 1
        assert "IN (%s, %s, %s, %s, %s)" in sqlite_connection.queries[0]

    def test_fetch_nothing(self, sql_row_store, sqlite_connection):
        sqlite_connection.queries.clear()
        assert sql_row_store.fetch_rows([]) == {}
        assert not sqlite_connection.queries

    def test_empty_flags(self, sql_row_store):
        text_id = sql_row_store.insert_row(b"legacy", BlobFlags.NONE)
        assert sql_row_store.fetch_rows([text_id])[text_id].flags == BlobFlags.NONE

    def test_domain_id(self, sql_row_store):
        assert sql_row_store.domain_id == "sqlblob_test"

    def test_missing_table(self, sqlite_connection):
        store = SqlRowStore(sqlite_connection, "no_such_table")
        with pytest.raises(RowStoreError):
            store.fetch_rows([1])

    def test_translated_errors(self):
        connection = MagicMock()
        connection.query.side_effect = MissingTableError("Table 'wiki.text' doesn't exist", "SELECT")
        with pytest.raises(RowStoreError) as info:
            SqlRowStore(connection).fetch_rows([1])
        assert isinstance(info.value.__cause__, MissingTableError)

    def test_client_errors(self):
        connection = MagicMock()
        connection.query.side_effect = pymysql.err.OperationalError(2003, "Can't connect")
        with pytest.raises(RowStoreError):
            SqlRowStore(connection).insert_row(b"x", BlobFlags.UTF8)

    def test_insert_without_id(self):
        connection = MagicMock()
        connection.query.return_value.lastrowid = 0
        with pytest.raises(RowStoreError):
            SqlRowStore(connection).insert_row(b"x", BlobFlags.UTF8)

    def test_declare(self):
        connection = MagicMock()
        SqlRowStore(connection, "text").declare()
        query = connection.query.call_args[0][0]
        assert "CREATE TABLE IF NOT EXISTS `text`" in query
        assert "old_text mediumblob" in query
