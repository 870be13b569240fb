"""
Byte storage behind external stores, on top of fsspec.

A StorageBackend is built from a store spec (see ConfigWrapper.get_store_spec)
and reads and writes whole objects by their path below the store's location.
Local directories are accessed directly; every other protocol goes through an
fsspec filesystem created on first use.
"""

import logging
from pathlib import Path, PurePosixPath
from typing import Any, Optional

import fsspec

from . import errors
from .utils import safe_write

logger = logging.getLogger(__name__.split(".")[0])

S3_REQUIRED_KEYS = ("endpoint", "bucket", "access_key", "secret_key")


class StorageBackend:
    """
    Object storage of one external store.

    :param spec: store spec with ``protocol`` (file, memory, s3, gcs or azure),
        an optional ``location`` below which objects are kept, and the bucket,
        container and credentials its protocol needs
    """

    def __init__(self, spec: dict[str, Any]):
        self.spec = spec
        self.protocol = spec.get("protocol", "file")
        self._fs: Optional[fsspec.AbstractFileSystem] = None
        if self.protocol == "file":
            location = spec.get("location")
            if location and not Path(location).is_dir():
                raise FileNotFoundError(f"Inaccessible local directory {location}")
        elif self.protocol == "s3":
            missing = [key for key in S3_REQUIRED_KEYS if not spec.get(key)]
            if missing:
                raise errors.SqlBlobError(f"Missing S3 configuration: {', '.join(missing)}")

    def __repr__(self) -> str:
        return f"StorageBackend({self.protocol}:{self.spec.get('location', '')})"

    @property
    def fs(self) -> fsspec.AbstractFileSystem:
        if self._fs is None:
            self._fs = self._open_filesystem()
        return self._fs

    def _open_filesystem(self) -> fsspec.AbstractFileSystem:
        spec = self.spec
        if self.protocol in ("file", "memory"):
            return fsspec.filesystem(self.protocol)
        if self.protocol == "s3":
            endpoint = spec["endpoint"]
            if "://" not in endpoint:
                endpoint = f"{'https' if spec.get('secure') else 'http'}://{endpoint}"
            return fsspec.filesystem(
                "s3",
                key=spec["access_key"],
                secret=spec["secret_key"],
                client_kwargs={"endpoint_url": endpoint},
            )
        if self.protocol == "gcs":
            return fsspec.filesystem("gcs", token=spec.get("token"), project=spec.get("project"))
        if self.protocol == "azure":
            return fsspec.filesystem(
                "abfs",
                account_name=spec.get("account_name"),
                account_key=spec.get("account_key"),
                connection_string=spec.get("connection_string"),
            )
        raise errors.SqlBlobError(f"Unsupported storage protocol: {self.protocol}")

    def _full_path(self, path: str | PurePosixPath) -> str:
        """Path of an object in the filesystem: bucket or container, location, path."""
        full_path = str(PurePosixPath(self.spec.get("location") or "", str(path)))
        if self.protocol in ("s3", "gcs"):
            return f"{self.spec['bucket']}/{full_path.lstrip('/')}"
        if self.protocol == "azure":
            return f"{self.spec['container']}/{full_path.lstrip('/')}"
        return full_path

    def put_buffer(self, buffer: bytes, path: str | PurePosixPath) -> None:
        """Write an object. Objects are immutable: an existing local file is kept."""
        full_path = self._full_path(path)
        logger.debug(f"put_buffer: {len(buffer)} bytes -> {self.protocol}:{full_path}")
        if self.protocol == "file":
            safe_write(full_path, buffer)
        else:
            self.fs.pipe_file(full_path, buffer)

    def get_buffer(self, path: str | PurePosixPath) -> bytes:
        """
        Read an object.

        :raises ExternalStoreError: if there is no object at path
        """
        full_path = self._full_path(path)
        logger.debug(f"get_buffer: {self.protocol}:{full_path}")
        try:
            if self.protocol == "file":
                return Path(full_path).read_bytes()
            return self.fs.cat_file(full_path)
        except FileNotFoundError:
            raise errors.ExternalStoreError(f"Missing external object {self.protocol}:{full_path}") from None

    def exists(self, path: str | PurePosixPath) -> bool:
        full_path = self._full_path(path)
        if self.protocol == "file":
            return Path(full_path).is_file()
        return self.fs.exists(full_path)

    def remove(self, path: str | PurePosixPath) -> None:
        """Delete an object; a missing object is not an error."""
        full_path = self._full_path(path)
        logger.debug(f"remove: {self.protocol}:{full_path}")
        if self.protocol == "file":
            Path(full_path).unlink(missing_ok=True)
            return
        try:
            self.fs.rm(full_path)
        except FileNotFoundError:
            logger.debug(f"remove: {full_path} was already gone")


def get_storage_backend(spec: dict[str, Any]) -> StorageBackend:
    """Create the storage backend of a store spec."""
    return StorageBackend(spec)
