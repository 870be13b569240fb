"""
The blob store: text in, address out, and back.

SqlBlobStore composes the row store, the external store gateway, the flag pipeline
and a read-through cache. Blobs are immutable once stored, so cached text never
needs invalidation; entries only expire.

Addresses understood by the store:

- ``tt:<id>``: row ``id`` of the text table
- ``es:<url>[?flags=...]``: an object in an external store, with its flags
- ``bad:<anything>``: content known to be lost
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from .address import (
    BAD_SCHEMA,
    EXTERNAL_SCHEMA,
    ROW_SCHEMA,
    format_address,
    make_row_address,
    parse_address,
    row_id_of,
)
from .cache import FileCache, MemoryCache, ObjectCache
from .compression import compress_data, decompress_data
from .errors import BadBlobError, BlobAccessError, ExternalStoreError, MalformedAddressError, RowStoreError
from .external import ExternalStoreAccess, split_url
from .flags import BlobFlags
from .rowstore import RowStore, SqlRowStore
from .settings import BlobStoreSettings, config

logger = logging.getLogger(__name__.split(".")[0])

CACHE_NAMESPACE = "blob"

MESSAGES = {
    "bad-blob-address": "Bad blob address: {address}.",
    "known-bad-blob": "The content at {address} is missing or corrupted (bad schema).",
    "unknown-blob-schema": "Unknown blob address schema: {schema} in {address}.",
    "unfetchable-blob": "Unable to fetch blob at {address}.",
    "bad-blob-data": "Bad data in {location} for {address}.",
}
# errors of addresses that can never resolve, raised as BadBlobError
BAD_BLOB_MESSAGES = ("bad-blob-address", "known-bad-blob")
REPAIR_HINT = (
    "Check the text table and the external stores, and point references to lost content at a bad: address."
)


@dataclass(frozen=True)
class BatchError:
    """
    One failed address of a batch read.

    ``message`` is a key of MESSAGES; ``params`` fills its placeholders and always
    holds the offending ``address``, plus its ``schema`` whenever that could be parsed.
    """

    kind: str
    message: str
    params: Mapping[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{MESSAGES[self.message].format(**self.params)} {REPAIR_HINT}"

    def __hash__(self) -> int:
        return hash((self.kind, self.message, tuple(sorted(self.params.items()))))

    @property
    def address(self) -> str:
        return self.params["address"]


def _warning(message: str, address: str, **params: str) -> BatchError:
    return BatchError("warning", message, MappingProxyType(dict(address=address, **params)))


@dataclass(frozen=True)
class BlobBatch:
    """
    Result of SqlBlobStore.get_blob_batch().

    ``values`` has one entry per requested address: the text, or None if the
    address could not be resolved. ``errors`` lists the failures in request order.
    """

    values: Mapping[str, str | None]
    errors: tuple[BatchError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


class SqlBlobStore:
    """
    Blob store over a row store, with optional external storage and a read-through cache.

    Parameters
    ----------
    row_store : RowStore
        Where rows of the text table are read from and written to.
    external_access : ExternalStoreAccess, optional
        Gateway to external stores, needed for ``external`` rows, ``es:``
        addresses and ``use_external_store``.
    cache : ObjectCache, optional
        Cache of expanded text. Defaults to a private MemoryCache.
    settings : BlobStoreSettings, optional
        Initial policy. Defaults to a copy of ``config["blobs"]``; the store
        never writes back to the global configuration.
    """

    def __init__(
        self,
        row_store: RowStore,
        external_access: ExternalStoreAccess | None = None,
        cache: ObjectCache | None = None,
        *,
        settings: BlobStoreSettings | None = None,
    ) -> None:
        self.row_store = row_store
        self.external_access = external_access
        self.cache = cache if cache is not None else MemoryCache()
        self._settings = settings.model_copy() if settings is not None else config.blob_store_settings()

    @classmethod
    def from_config(cls) -> SqlBlobStore:
        """Build a store on the shared connection, configured external stores and cache."""
        from .connection import conn

        settings = config.blob_store_settings()
        return cls(
            SqlRowStore(conn(), settings.text_table),
            ExternalStoreAccess.from_config() if config["stores"] else None,
            FileCache.from_config() if config["cache"] else None,
            settings=settings,
        )

    def __repr__(self) -> str:
        return f"SqlBlobStore({self.row_store!r})"

    # --- policy

    @property
    def compress_blobs(self) -> bool:
        """Whether new blobs are deflated."""
        return self._settings.compress_blobs

    @compress_blobs.setter
    def compress_blobs(self, value: bool) -> None:
        self._settings.compress_blobs = value

    @property
    def legacy_encoding(self) -> str | None:
        """Encoding of stored text not flagged ``utf-8``, or None."""
        return self._settings.legacy_encoding

    @legacy_encoding.setter
    def legacy_encoding(self, value: str | None) -> None:
        self._settings.legacy_encoding = value

    @property
    def cache_expiry(self) -> int:
        """Seconds expanded text stays cached."""
        return self._settings.cache_expiry

    @cache_expiry.setter
    def cache_expiry(self, value: int) -> None:
        self._settings.cache_expiry = value

    @property
    def use_external_store(self) -> bool:
        """Whether new blobs are written to the external store."""
        return self._settings.use_external_store

    @use_external_store.setter
    def use_external_store(self, value: bool) -> None:
        self._settings.use_external_store = value

    # --- addresses

    @staticmethod
    def make_address_from_text_id(text_id: int) -> str:
        return format_address(make_row_address(text_id))

    @staticmethod
    def split_blob_address(address: str) -> tuple[str, str, dict[str, str]]:
        """Return (schema, identifier, parameters) of an address."""
        parsed = parse_address(address)
        return parsed.schema, parsed.identifier, dict(parsed.parameters)

    def get_text_id_from_address(self, address: str) -> int | None:
        """
        Text id of a ``tt:`` address, or None for addresses of other schemas.

        :raises MalformedAddressError: if the address or its text id is malformed
        """
        parsed = parse_address(address)
        if parsed.schema != ROW_SCHEMA:
            return None
        return row_id_of(parsed)

    def get_cache_key(self, address: str) -> str:
        return self.cache.make_key(CACHE_NAMESPACE, self.row_store.domain_id, address)

    # --- writing

    def compress_data(self, text: str) -> tuple[bytes, BlobFlags]:
        """Encode text according to this store's policy; see compression.compress_data."""
        return compress_data(text, compress=self.compress_blobs, legacy_encoding=self.legacy_encoding)

    def store_blob(self, text: str) -> str:
        """
        Store text in a new row.

        :return: the address of the new blob
        :raises BlobAccessError: if the row or external object cannot be written
        """
        if not isinstance(text, str):
            raise TypeError(f"Blob text must be str, not {type(text).__name__}")
        blob, flags = self.compress_data(text)
        if self.use_external_store:
            if self.external_access is None:
                raise ExternalStoreError("use_external_store is set but no external store access is configured")
            blob = self.external_access.insert(blob).encode("utf-8")
            flags |= BlobFlags.EXTERNAL
        text_id = self.row_store.insert_row(blob, flags)
        address = self.make_address_from_text_id(text_id)
        logger.debug(f"Stored blob {address} with flags {flags}")
        return address

    # --- reading

    def decompress_data(self, blob: bytes | str, flags: str | Iterable[str] | BlobFlags | None) -> str | None:
        """Recover text with this store's legacy encoding; see compression.decompress_data."""
        return decompress_data(blob, flags, legacy_encoding=self.legacy_encoding)

    def expand_blob(
        self,
        raw: bytes | str,
        flags: str | Iterable[str] | BlobFlags | None,
        cache_key: str | None = None,
    ) -> str | None:
        """
        Recover the text of a stored payload, following external store URLs.

        For ``external`` payloads the fetched data is expanded with the same flags,
        and, when cache_key (a blob address) is given, the text is cached under it.

        :return: the text, or None if the payload or the URL it holds is bad
        :raises BlobAccessError: if an external store cannot serve the URL
        """
        flags = BlobFlags.parse(flags)
        if BlobFlags.EXTERNAL not in flags:
            return self.decompress_data(raw, flags)

        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = bytes(raw).decode("utf-8")
            except UnicodeDecodeError:
                return None
        if split_url(raw) is None:
            return None
        if self.external_access is None:
            raise ExternalStoreError(f"No external store access configured to fetch {raw}")

        key = self.get_cache_key(cache_key) if cache_key else None
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        blob = self.external_access.fetch(raw)
        if blob is None:
            return None
        text = self.decompress_data(blob, flags)
        if key is not None and text is not None:
            self.cache.set(key, text, self.cache_expiry)
        return text

    def get_blob(self, address: str) -> str:
        """
        Text of the blob at an address, read through the cache.

        :raises BadBlobError: if the address is malformed or marked bad
        :raises BlobAccessError: if the address cannot be resolved
        """
        if not isinstance(address, str):
            raise TypeError(f"Blob address must be str, not {type(address).__name__}")
        key = self.get_cache_key(address)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        result, errors = self._fetch_blobs([address])
        error = errors.get(address)
        if error is not None:
            if error.message in BAD_BLOB_MESSAGES:
                raise BadBlobError(str(error))
            raise BlobAccessError(str(error))
        blob = result[address]
        self.cache.set(key, blob, self.cache_expiry)
        return blob

    def get_blob_batch(self, addresses: Iterable[str]) -> BlobBatch:
        """
        Text of several blobs.

        Each address is resolved independently: a failure leaves None as its value
        and adds a warning, but never fails the batch. Cache hits are served
        directly; all text rows missing from the cache are fetched in one query.
        """
        addresses = list(dict.fromkeys(addresses))
        if not addresses:
            return BlobBatch(MappingProxyType({}))

        keys = {address: self.get_cache_key(address) for address in addresses}
        hits = self.cache.get_many(keys.values())
        values = {address: hits.get(keys[address]) for address in addresses}
        misses = [address for address in addresses if values[address] is None]

        result, errors = self._fetch_blobs(misses)
        for address in misses:
            values[address] = result.get(address)
            if address not in errors and values[address] is not None:
                self.cache.set(keys[address], values[address], self.cache_expiry)

        batch_errors = tuple(errors[address] for address in addresses if address in errors)
        for error in batch_errors:
            logger.warning(str(error))
        return BlobBatch(MappingProxyType(values), batch_errors)

    def _fetch_blobs(self, addresses: list[str]) -> tuple[dict[str, str | None], dict[str, BatchError]]:
        """Resolve addresses without the cache; text rows are fetched in bulk."""
        result: dict[str, str | None] = {}
        errors: dict[str, BatchError] = {}
        addresses_by_text_id: dict[int, list[str]] = {}

        for address in addresses:
            result[address] = None
            try:
                parsed = parse_address(address)
            except MalformedAddressError:
                errors[address] = _warning("bad-blob-address", address)
                continue

            if parsed.schema == ROW_SCHEMA:
                try:
                    addresses_by_text_id.setdefault(row_id_of(parsed), []).append(address)
                except MalformedAddressError:
                    errors[address] = _warning("bad-blob-address", address, schema=parsed.schema)
            elif parsed.schema == EXTERNAL_SCHEMA:
                flags = BlobFlags.parse(parsed.parameters.get("flags")) | BlobFlags.EXTERNAL
                location = "external store address"
                self._expand_into(result, errors, address, parsed.identifier, flags, location, EXTERNAL_SCHEMA)
            elif parsed.schema == BAD_SCHEMA:
                errors[address] = _warning("known-bad-blob", address, schema=BAD_SCHEMA)
            else:
                errors[address] = _warning("unknown-blob-schema", address, schema=parsed.schema)

        if not addresses_by_text_id:
            return result, errors

        try:
            rows = self.row_store.fetch_rows(addresses_by_text_id)
        except RowStoreError as e:
            logger.warning(f"Failed to fetch text rows: {e}")
            rows = {}

        for text_id, row_addresses in addresses_by_text_id.items():
            row = rows.get(text_id)
            for address in row_addresses:
                if row is None:
                    errors[address] = _warning("unfetchable-blob", address, schema=ROW_SCHEMA)
                elif row.raw is None:
                    location = f"text row {text_id}"
                    errors[address] = _warning("bad-blob-data", address, location=location, schema=ROW_SCHEMA)
                else:
                    self._expand_into(result, errors, address, row.raw, row.flags, f"text row {text_id}", ROW_SCHEMA)
        return result, errors

    def _expand_into(
        self,
        result: dict[str, str | None],
        errors: dict[str, BatchError],
        address: str,
        raw: bytes | str,
        flags: BlobFlags,
        location: str,
        schema: str,
    ) -> None:
        try:
            blob = self.expand_blob(raw, flags, address)
        except BlobAccessError as e:
            logger.debug(f"Failed to expand {address}: {e}")
            errors[address] = _warning("unfetchable-blob", address, schema=schema)
            return
        if blob is None:
            errors[address] = _warning("bad-blob-data", address, location=location, schema=schema)
        result[address] = blob
