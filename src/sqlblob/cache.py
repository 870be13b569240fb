"""
Caches for expanded blob text.

The blob store treats its cache as a plain key-value service with expiry. Keys
are built with make_key() and always carry the domain id of the row store, so
that stores of different tenants sharing one cache never read each other's blobs.
"""

from __future__ import annotations

import hashlib
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any
from urllib.parse import quote

from .errors import SqlBlobError
from .utils import safe_write, subfold

logger = logging.getLogger(__name__.split(".")[0])

CACHE_SUBFOLDING = (2, 2)  # (2, 2) means  "0123456789abcd" will be saved as "01/23/0123456789abcd"


class ObjectCache(ABC):
    """Key-value cache with per-entry expiry."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or expired."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """
        Cache a value.

        :param ttl: seconds until expiry; None never expires, ttl <= 0 does not cache
        :return: True if the value was stored
        """
        ...

    def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        """Look up several keys at once; only hits appear in the result."""
        result = {}
        for key in keys:
            value = self.get(key)
            if value is not None:
                result[key] = value
        return result

    @staticmethod
    def make_key(namespace: str, domain_id: str, *parts: Any) -> str:
        """
        Build a cache key scoped by namespace and domain.

        Components are percent-encoded, so ``:`` inside one never splits it.
        """
        return ":".join(quote(str(part), safe="") for part in (namespace, domain_id, *parts))


class MemoryCache(ObjectCache):
    """
    Process-local cache.

    :param clock: source of the current time in seconds
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, float | None]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        try:
            value, expires = self._entries[key]
        except KeyError:
            return None
        if expires is not None and expires <= self._clock():
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        if ttl is not None and ttl <= 0:
            return False
        expires = None if ttl is None else self._clock() + ttl
        self._entries[key] = (value, expires)
        return True

    def clear(self) -> None:
        self._entries.clear()


class FileCache(ObjectCache):
    """
    Cache of text values in a local directory, one file per key.

    File names are the MD5 hex digest of the key, subfolded to keep directories
    small. Each file starts with its expiry timestamp on one line (``0`` for
    never), followed by the UTF-8 encoded value.
    """

    def __init__(self, directory: str | Path, clock: Callable[[], float] = time.time) -> None:
        self.directory = Path(directory)
        if not self.directory.is_dir():
            raise FileNotFoundError(f"Inaccessible cache directory {self.directory}")
        self._clock = clock

    @classmethod
    def from_config(cls) -> FileCache:
        from .settings import config

        if not config["cache"]:
            raise SqlBlobError("Provide a directory in config['cache'] to use a file cache.")
        return cls(config["cache"])

    def _path(self, key: str) -> Path:
        name = hashlib.md5(key.encode()).hexdigest()
        return self.directory.joinpath(*subfold(name, CACHE_SUBFOLDING), name)

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            buffer = path.read_bytes()
        except FileNotFoundError:
            return None
        header, _, value = buffer.partition(b"\n")
        try:
            expires = float(header)
            text = value.decode("utf-8")
        except ValueError:  # UnicodeDecodeError included
            logger.warning(f"Discarding corrupt cache file {path}")
            path.unlink(missing_ok=True)
            return None
        if expires and expires <= self._clock():
            path.unlink(missing_ok=True)
            return None
        return text

    def set(self, key: str, value: str, ttl: float | None = None) -> bool:
        if not isinstance(value, str):
            raise TypeError(f"FileCache stores text only, got {type(value).__name__}")
        if ttl is not None and ttl <= 0:
            return False
        expires = 0 if ttl is None else self._clock() + ttl
        safe_write(self._path(key), f"{expires!r}\n".encode() + value.encode("utf-8"), overwrite=True)
        return True

    def purge(self) -> None:
        """Remove all cached files."""
        for path in self.directory.rglob("*"):
            if path.is_file():
                path.unlink()
