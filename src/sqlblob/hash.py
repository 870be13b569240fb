from __future__ import annotations

import base64
import hashlib


def text_hash(data: bytes) -> str:
    """
    MD5 hex digest of a text item, used as its key inside a concatenated envelope.
    """
    return hashlib.md5(data).hexdigest()


def content_id(data: bytes) -> str:
    """
    Base32-encoded MD5 hash of content (26 lowercase characters, no padding),
    used to name objects written to an external store.
    """
    md5_digest = hashlib.md5(data).digest()
    return base64.b32encode(md5_digest).decode("ascii").rstrip("=").lower()
