"""
Flag pipeline: turning text into stored payloads and back.

compress_data() encodes and optionally deflates text before it is written.
decompress_data() reverses the transformations named by a row's flags, in a
fixed order: error check, inflate, envelope unwrapping, character decoding.

Bad data never raises here. A payload that cannot be recovered yields None so
that callers can tell "no text" apart from "the store failed".
"""

from __future__ import annotations

import codecs
import logging
import zlib
from collections.abc import Iterable

from .envelope import deflate, inflate, unpack_envelope
from .errors import EnvelopeError
from .flags import BlobFlags

logger = logging.getLogger(__name__.split(".")[0])


def compress_data(
    text: str,
    *,
    compress: bool = False,
    legacy_encoding: str | None = None,
) -> tuple[bytes, BlobFlags]:
    """
    Encode text for storage and compute its flags.

    With a legacy encoding configured the text is stored in that encoding and not
    flagged ``utf-8``, so that decompress_data() applies the same encoding when
    reading it back. Text the legacy encoding cannot represent is stored as UTF-8.

    :param text: the text to store
    :param compress: deflate the payload and flag it ``gzip``
    :param legacy_encoding: name of the legacy character encoding, if any
    :return: (payload, flags)
    """
    flags = BlobFlags.NONE
    blob = None
    if legacy_encoding:
        try:
            blob = text.encode(legacy_encoding)
        except UnicodeEncodeError:
            logger.debug(f"Text not representable in {legacy_encoding}, storing as UTF-8")
        except LookupError:
            logger.warning(f"Unknown legacy encoding {legacy_encoding}, storing as UTF-8")
    if blob is None:
        blob = text.encode("utf-8")
        flags |= BlobFlags.UTF8
    if compress:
        blob = deflate(blob)
        flags |= BlobFlags.GZIP
    return blob, flags


def decompress_data(
    blob: bytes | str,
    flags: str | Iterable[str] | BlobFlags | None,
    *,
    legacy_encoding: str | None = None,
) -> str | None:
    """
    Recover the text of a stored payload.

    The ``external`` flag is not handled here: the payload must already have been
    fetched from the external store.

    :param blob: the stored payload
    :param flags: the flags stored with it
    :param legacy_encoding: encoding of payloads not flagged ``utf-8``; this is the
        reading store's setting, payloads carry no encoding of their own
    :return: the text, or None if the payload cannot be recovered
    """
    if isinstance(blob, str):
        blob = blob.encode("utf-8")
    if not blob:
        return ""
    flags = BlobFlags.parse(flags)

    if BlobFlags.ERROR in flags:
        return None

    if BlobFlags.GZIP in flags:
        try:
            blob = inflate(blob)
        except zlib.error as e:
            logger.warning(f"Failed to inflate blob data: {e}")
            return None

    if BlobFlags.OBJECT in flags:
        try:
            blob = unpack_envelope(blob).get_text()
        except EnvelopeError as e:
            logger.warning(f"Failed to unserialize object envelope: {e}")
            return None
        if blob is None:
            logger.warning("Object envelope holds no text for its default key")
            return None

    if legacy_encoding and BlobFlags.UTF8 not in flags:
        try:
            codecs.lookup(legacy_encoding)
        except LookupError:
            logger.warning(f"Unknown legacy encoding {legacy_encoding!r}")
            return None
        return blob.decode(legacy_encoding, errors="ignore")

    try:
        return blob.decode("utf-8")
    except UnicodeDecodeError as e:
        logger.warning(f"Blob data is not valid UTF-8: {e}")
        return None
