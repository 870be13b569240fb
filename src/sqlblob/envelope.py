"""
Object envelopes for blobs stored with the ``object`` flag.

An envelope is either a single flat payload or a concatenated set of
revision texts sharing one (optionally deflated) body, of which one item is the
text of the blob that points at it. Envelopes are parsed by an explicit, versioned
reader: nothing in a stored row is ever handed to a generic object deserializer.

Wire format::

    b"sqlblob-env\\0" <version:u8> <kind:u8> <body>

    kind b"F": body is the payload
    kind b"C": body is <compressed:u8> <table>, the table deflated if compressed
               table = <count:u32> <default key> (<key> <data>) * count
               each key and data is a u64 length followed by its bytes
"""

from __future__ import annotations

import zlib
from dataclasses import dataclass, field

from .errors import EnvelopeError
from .hash import text_hash

MAGIC = b"sqlblob-env\0"
VERSION = 1
FLAT = b"F"
CONCATENATED = b"C"


def len_u64(obj: bytes) -> bytes:
    return len(obj).to_bytes(8, "little")


def len_u32(obj) -> bytes:
    return len(obj).to_bytes(4, "little")


def deflate(data: bytes) -> bytes:
    compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
    return compressor.compress(data) + compressor.flush()


def inflate(data: bytes) -> bytes:
    """Inverse of deflate; raises zlib.error on corrupt or truncated input."""
    decompressor = zlib.decompressobj(wbits=-zlib.MAX_WBITS)
    result = decompressor.decompress(data) + decompressor.flush()
    if not decompressor.eof:
        raise zlib.error("incomplete deflate stream")
    return result


@dataclass
class FlatEnvelope:
    """An envelope wrapping exactly one payload."""

    text: bytes = b""

    def get_text(self) -> bytes:
        return self.text


@dataclass
class ConcatenatedEnvelope:
    """
    Several texts concatenated into one envelope, keyed by their MD5 hash.

    ``default_key`` names the item returned by get_text().
    """

    items: dict[str, bytes] = field(default_factory=dict)
    default_key: str | None = None
    compressed: bool = True

    def add_item(self, text: bytes) -> str:
        key = text_hash(text)
        self.items.setdefault(key, text)
        return key

    def get_item(self, key: str) -> bytes | None:
        return self.items.get(key)

    def set_text(self, text: bytes) -> str:
        self.default_key = self.add_item(text)
        return self.default_key

    def get_text(self) -> bytes | None:
        if self.default_key is None:
            return None
        return self.get_item(self.default_key)

    def size(self) -> int:
        return sum(len(text) for text in self.items.values())


Envelope = FlatEnvelope | ConcatenatedEnvelope


def pack_envelope(envelope: Envelope) -> bytes:
    """Serialize an envelope into its wire format."""
    header = MAGIC + bytes([VERSION])
    if isinstance(envelope, FlatEnvelope):
        return header + FLAT + envelope.text
    if isinstance(envelope, ConcatenatedEnvelope):
        default_key = (envelope.default_key or "").encode()
        table = len_u32(envelope.items) + len_u64(default_key) + default_key
        for key, text in envelope.items.items():
            key = key.encode()
            table += len_u64(key) + key + len_u64(text) + text
        if envelope.compressed:
            table = deflate(table)
        return header + CONCATENATED + bytes([envelope.compressed]) + table
    raise EnvelopeError(f"Cannot pack {type(envelope).__name__} as an envelope")


def unpack_envelope(blob: bytes) -> Envelope:
    """
    Parse an envelope from its wire format.

    :raises EnvelopeError: if blob is not a well-formed envelope of a known version
    """
    return _EnvelopeReader(blob).read()


class _EnvelopeReader:
    def __init__(self, blob: bytes) -> None:
        self._blob = bytes(blob)
        self._pos = 0

    def read(self) -> Envelope:
        if not self._blob.startswith(MAGIC):
            raise EnvelopeError("Payload is not an object envelope")
        self._pos = len(MAGIC)
        version = self.read_value(1)
        if version != VERSION:
            raise EnvelopeError(f"Unsupported envelope version {version}")
        kind = self.read_bytes(1)
        if kind == FLAT:
            return FlatEnvelope(self._blob[self._pos :])
        if kind == CONCATENATED:
            return self.read_concatenated()
        raise EnvelopeError(f"Unknown envelope kind {kind!r}")

    def read_concatenated(self) -> ConcatenatedEnvelope:
        compressed = bool(self.read_value(1))
        if compressed:
            try:
                self._blob = inflate(self._blob[self._pos :])
            except zlib.error as e:
                raise EnvelopeError(f"Corrupt envelope body: {e}") from None
            self._pos = 0
        count = self.read_value(4)
        default_key = self.read_key() or None
        items = {}
        for _ in range(count):
            key = self.read_key()
            items[key] = self.read_sized()
        if self._pos != len(self._blob):
            raise EnvelopeError("Envelope length check failed")
        return ConcatenatedEnvelope(items=items, default_key=default_key, compressed=compressed)

    def read_bytes(self, n_bytes: int) -> bytes:
        if self._pos + n_bytes > len(self._blob):
            raise EnvelopeError("Truncated envelope")
        data = self._blob[self._pos : self._pos + n_bytes]
        self._pos += n_bytes
        return data

    def read_value(self, n_bytes: int) -> int:
        return int.from_bytes(self.read_bytes(n_bytes), "little")

    def read_sized(self) -> bytes:
        return self.read_bytes(self.read_value(8))

    def read_key(self) -> str:
        try:
            return self.read_sized().decode("ascii")
        except UnicodeDecodeError:
            raise EnvelopeError("Envelope item key is not ASCII") from None
