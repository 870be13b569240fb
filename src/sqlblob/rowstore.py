"""
Row stores: where blob payloads live, one row per blob.

Rows are append-only. A row is written once by insert_row() and never updated,
so concurrent writers cannot conflict on blob content.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import pymysql as client

from . import errors
from .flags import BlobFlags

logger = logging.getLogger(__name__.split(".")[0])


@dataclass(frozen=True)
class StoredRow:
    """One row of the text table."""

    text_id: int
    raw: bytes | None
    flags: BlobFlags


class RowStore(ABC):
    """
    Abstract base class of row stores.

    Implementations fetch rows in bulk by text id and insert new rows.
    """

    @property
    @abstractmethod
    def domain_id(self) -> str:
        """
        Identifier of the database the rows belong to.

        Cache keys are scoped by it, so stores of different tenants never
        share cached blobs.
        """
        ...

    @abstractmethod
    def fetch_rows(self, text_ids: Iterable[int]) -> dict[int, StoredRow]:
        """
        Fetch rows by text id.

        Parameters
        ----------
        text_ids : Iterable[int]
            Ids of the rows to fetch.

        Returns
        -------
        dict[int, StoredRow]
            The rows found, keyed by text id. Missing ids are absent.
        """
        ...

    @abstractmethod
    def insert_row(self, raw: bytes, flags: BlobFlags) -> int:
        """
        Insert a new row.

        Parameters
        ----------
        raw : bytes
            The stored payload.
        flags : BlobFlags
            The flags stored with it.

        Returns
        -------
        int
            The text id of the new row.
        """
        ...


class MemoryRowStore(RowStore):
    """Row store kept in a dict, for development and testing."""

    def __init__(self, domain_id: str = "local") -> None:
        self._domain_id = domain_id
        self._rows: dict[int, StoredRow] = {}
        self.fetch_count = 0

    @property
    def domain_id(self) -> str:
        return self._domain_id

    def __len__(self) -> int:
        return len(self._rows)

    def fetch_rows(self, text_ids: Iterable[int]) -> dict[int, StoredRow]:
        self.fetch_count += 1
        return {text_id: self._rows[text_id] for text_id in set(text_ids) if text_id in self._rows}

    def insert_row(self, raw: bytes, flags: BlobFlags) -> int:
        text_id = len(self._rows) + 1
        self._rows[text_id] = StoredRow(text_id, bytes(raw), BlobFlags.parse(flags))
        return text_id


class SqlRowStore(RowStore):
    """
    Row store over the ``text`` table of a relational database.

    Parameters
    ----------
    connection
        A Connection, or any object with a ``query(sql, args)`` method returning
        a DB-API cursor and a ``database`` attribute.
    table : str
        Name of the text table.
    """

    definition = """
        CREATE TABLE IF NOT EXISTS `{table}` (
            old_id int unsigned NOT NULL AUTO_INCREMENT,
            old_text mediumblob NOT NULL,
            old_flags tinyblob NOT NULL,
            PRIMARY KEY (old_id)
        ) ENGINE=InnoDB, COMMENT="blob storage, one row per blob"
        """

    def __init__(self, connection: Any, table: str = "text") -> None:
        self.connection = connection
        self.table = table

    def __repr__(self) -> str:
        return f"SqlRowStore({self.domain_id}.{self.table})"

    @property
    def domain_id(self) -> str:
        return self.connection.database

    def declare(self) -> None:
        """Create the text table if it does not exist yet."""
        self._query(self.definition.format(table=self.table))

    def _query(self, query: str, args: tuple = ()) -> Any:
        try:
            return self.connection.query(query, args)
        except (errors.QueryError, errors.LostConnectionError, client.err.Error) as e:
            raise errors.RowStoreError(f"Text table query failed: {e}") from e

    def fetch_rows(self, text_ids: Iterable[int]) -> dict[int, StoredRow]:
        text_ids = sorted(set(text_ids))
        if not text_ids:
            return {}
        placeholders = ", ".join(["%s"] * len(text_ids))
        cursor = self._query(
            f"SELECT old_id, old_text, old_flags FROM `{self.table}` WHERE old_id IN ({placeholders})",
            tuple(text_ids),
        )
        rows = {}
        for text_id, raw, flags in cursor.fetchall():
            if isinstance(raw, str):
                raw = raw.encode("utf-8")
            rows[int(text_id)] = StoredRow(int(text_id), raw, BlobFlags.parse(flags))
        logger.debug(f"Fetched {len(rows)} of {len(text_ids)} rows from {self.table}")
        return rows

    def insert_row(self, raw: bytes, flags: BlobFlags) -> int:
        cursor = self._query(
            f"INSERT INTO `{self.table}` (old_text, old_flags) VALUES (%s, %s)",
            (bytes(raw), BlobFlags.parse(flags).serialize()),
        )
        text_id = cursor.lastrowid
        if not text_id:
            raise errors.RowStoreError(f"Insert into {self.table} did not return a text id")
        return int(text_id)
