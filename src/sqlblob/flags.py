"""
Blob flags: how a stored payload has to be transformed to recover its text.

Flags are stored next to the payload as a comma-joined list of lowercase tokens,
e.g. ``utf-8,gzip``. Token order in storage carries no meaning.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable

logger = logging.getLogger(__name__.split(".")[0])


class BlobFlags(enum.Flag):
    NONE = 0
    UTF8 = enum.auto()  # payload is UTF-8; otherwise a configured legacy encoding applies
    GZIP = enum.auto()  # payload is raw-deflated
    OBJECT = enum.auto()  # payload is a serialized envelope
    EXTERNAL = enum.auto()  # payload is a URL into an external store
    ERROR = enum.auto()  # payload is known to be unrecoverable

    @classmethod
    def parse(cls, flags: str | Iterable[str] | BlobFlags | None) -> BlobFlags:
        """
        Parse flags from their stored form.

        Accepts a comma-joined string, an iterable of tokens or a BlobFlags value.
        Unknown tokens are ignored.
        """
        if isinstance(flags, BlobFlags):
            return flags
        if flags is None:
            return cls.NONE
        if isinstance(flags, (bytes, bytearray)):
            flags = flags.decode("ascii", errors="replace")
        if isinstance(flags, str):
            flags = flags.split(",")
        result = cls.NONE
        for token in flags:
            token = token.strip().lower()
            if not token:
                continue
            try:
                result |= _by_token[token]
            except KeyError:
                logger.debug(f"Ignoring unknown blob flag {token!r}")
        return result

    def serialize(self) -> str:
        """Comma-joined tokens in a fixed order."""
        return ",".join(token for flag, token in _tokens if flag in self)

    def __str__(self) -> str:
        return self.serialize()


_tokens = (
    (BlobFlags.UTF8, "utf-8"),
    (BlobFlags.GZIP, "gzip"),
    (BlobFlags.OBJECT, "object"),
    (BlobFlags.EXTERNAL, "external"),
    (BlobFlags.ERROR, "error"),
)
_by_token = {token: flag for flag, token in _tokens}
_by_token["utf8"] = BlobFlags.UTF8
