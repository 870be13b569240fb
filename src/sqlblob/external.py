"""
Access to external stores.

Blobs too large for the text table, or every blob when a store is configured with
``use_external_store``, live in external stores. The text row then holds a URL of
the form ``scheme://cluster/id`` and the ``external`` flag. The URL scheme selects
the StorageBackend, and the cluster and id name the object inside it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .errors import ExternalStoreError, SqlBlobError
from .hash import content_id
from .settings import config
from .storage import StorageBackend, get_storage_backend

logger = logging.getLogger(__name__.split(".")[0])


def split_url(url: str) -> tuple[str, str, str] | None:
    """
    Split an external store URL into scheme, cluster and object id.

    Returns None when the URL has no ``://``, nothing after it, or fewer than
    two ``/``-separated path segments.
    """
    scheme, sep, path = url.partition("://")
    if not sep or not scheme or not path:
        return None
    cluster, _, object_id = path.partition("/")
    if not cluster or not object_id:
        return None
    return scheme, cluster, object_id


class ExternalStoreAccess:
    """
    Gateway to the external stores, keyed by URL scheme.

    :param stores: mapping of URL scheme to a StorageBackend or its spec dict
    :param write_locations: ``scheme://cluster`` locations new blobs may be
        written to, tried in order
    """

    def __init__(
        self,
        stores: Mapping[str, StorageBackend | Mapping[str, Any]] | None = None,
        write_locations: Iterable[str] = (),
    ) -> None:
        self._stores = {
            scheme: backend if isinstance(backend, StorageBackend) else get_storage_backend(dict(backend))
            for scheme, backend in (stores or {}).items()
        }
        self.write_locations = tuple(write_locations)

    @classmethod
    def from_config(cls) -> ExternalStoreAccess:
        """Build the gateway from ``config["stores"]`` and ``config["external_write_locations"]``."""
        stores = {scheme: config.get_store_spec(scheme) for scheme in config["stores"]}
        return cls(stores, config["external_write_locations"])

    def __repr__(self) -> str:
        return f"ExternalStoreAccess({sorted(self._stores)}, write_locations={list(self.write_locations)})"

    def get_store(self, scheme: str) -> StorageBackend:
        try:
            return self._stores[scheme]
        except KeyError:
            raise ExternalStoreError(f"Unknown external store scheme: {scheme}") from None

    def fetch(self, url: str) -> bytes | None:
        """
        Fetch the raw payload at an external store URL.

        :return: the payload, or None if the URL is malformed
        :raises ExternalStoreError: if the store is unknown or the object is missing
        """
        parts = split_url(url)
        if parts is None:
            logger.debug(f"Malformed external store URL {url!r}")
            return None
        scheme, cluster, object_id = parts
        store = self.get_store(scheme)
        try:
            return store.get_buffer(f"{cluster}/{object_id}")
        except OSError as e:
            raise ExternalStoreError(f"Unable to read {url}: {e}") from e

    def fetch_many(self, urls: Iterable[str]) -> dict[str, bytes | None]:
        """
        Fetch several URLs; URLs that cannot be fetched map to None.
        """
        result = {}
        for url in urls:
            try:
                result[url] = self.fetch(url)
            except ExternalStoreError as e:
                logger.warning(f"Unable to fetch {url}: {e}")
                result[url] = None
        return result

    def insert(self, data: bytes) -> str:
        """
        Write a payload to the first write location that accepts it.

        :return: the URL of the new object
        :raises ExternalStoreError: if no write location is configured or all fail
        """
        if not self.write_locations:
            raise ExternalStoreError("No external store write location is configured")
        object_id = content_id(data)
        for location in self.write_locations:
            scheme, sep, cluster = location.partition("://")
            if not sep or not cluster or "/" in cluster:
                raise ExternalStoreError(f"Bad external store write location: {location}")
            try:
                self.get_store(scheme).put_buffer(data, f"{cluster}/{object_id}")
            except (OSError, SqlBlobError) as e:
                logger.warning(f"Failed to write to external store {location}: {e}")
                continue
            url = f"{location}/{object_id}"
            logger.debug(f"Stored {len(data)} bytes at {url}")
            return url
        raise ExternalStoreError(f"All external store write locations failed: {', '.join(self.write_locations)}")
