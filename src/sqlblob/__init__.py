"""
sqlblob: a layered store for text blobs behind logical addresses.

Blobs are written append-only into a relational text table, optionally deflated,
encoded in a legacy character encoding or moved to an external store, and read
back through a cache with domain-scoped keys::

    >>> import sqlblob
    >>> store = sqlblob.SqlBlobStore(sqlblob.MemoryRowStore())
    >>> address = store.store_blob("hello")
    >>> store.get_blob(address)
    'hello'
"""

__author__ = "sqlblob contributors"
__all__ = [
    "__author__",
    "__version__",
    "config",
    "conn",
    "Connection",
    "SqlBlobStore",
    "BlobBatch",
    "BatchError",
    "BlobAddress",
    "parse_address",
    "format_address",
    "make_row_address",
    "row_id_of",
    "BlobFlags",
    "compress_data",
    "decompress_data",
    "FlatEnvelope",
    "ConcatenatedEnvelope",
    "pack_envelope",
    "unpack_envelope",
    "ExternalStoreAccess",
    "StorageBackend",
    "RowStore",
    "SqlRowStore",
    "MemoryRowStore",
    "StoredRow",
    "ObjectCache",
    "MemoryCache",
    "FileCache",
    "errors",
    "SqlBlobError",
    "BlobAccessError",
    "BadBlobError",
    "MalformedAddressError",
    "logger",
]

from . import errors
from .address import BlobAddress, format_address, make_row_address, parse_address, row_id_of
from .blobstore import BatchError, BlobBatch, SqlBlobStore
from .cache import FileCache, MemoryCache, ObjectCache
from .compression import compress_data, decompress_data
from .connection import Connection, conn
from .envelope import ConcatenatedEnvelope, FlatEnvelope, pack_envelope, unpack_envelope
from .errors import BadBlobError, BlobAccessError, MalformedAddressError, SqlBlobError
from .external import ExternalStoreAccess
from .flags import BlobFlags
from .logging import logger
from .rowstore import MemoryRowStore, RowStore, SqlRowStore, StoredRow
from .settings import config
from .storage import StorageBackend
from .version import __version__
