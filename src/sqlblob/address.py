"""
Blob addresses.

A blob address is the serialized locator of a stored blob::

    schema:identifier[?key=value&key=value...]

``tt:<n>`` addresses point at row ``n`` of the text table, ``es:<url>`` at an
object in an external store and ``bad:<anything>`` marks content known to be lost.
Addresses are written into other tables by whatever stored them, so the string
form must stay exactly compatible.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode

from .errors import MalformedAddressError

ROW_SCHEMA = "tt"
EXTERNAL_SCHEMA = "es"
BAD_SCHEMA = "bad"

# all patterns are applied with fullmatch, so a trailing newline never matches
_schema_regexp = re.compile(r"[-+.\w]+")
_identifier_regexp = re.compile(r"[^\s?]+")
_address_regexp = re.compile(r"(?P<schema>[-+.\w]+):(?P<identifier>[^\s?]+)(\?(?P<query>\S*))?")
_text_id_regexp = re.compile(r"[1-9][0-9]*")


@dataclass(frozen=True)
class BlobAddress:
    """
    Parsed blob address: schema, opaque identifier and ordered parameters.

    :raises MalformedAddressError: if schema or identifier could not be parsed
        back from a formatted address
    """

    schema: str
    identifier: str
    parameters: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.schema, str) or not _schema_regexp.fullmatch(self.schema):
            raise MalformedAddressError(f"Bad blob address schema: {self.schema!r}")
        if not isinstance(self.identifier, str) or not _identifier_regexp.fullmatch(self.identifier):
            raise MalformedAddressError(f"Bad blob address identifier: {self.identifier!r}")

    def __str__(self) -> str:
        return format_address(self)

    def __hash__(self) -> int:
        return hash((self.schema, self.identifier, tuple(self.parameters.items())))


def parse_address(address: str) -> BlobAddress:
    """
    Split a blob address into its schema, identifier and parameters.

    :param address: the address string
    :return: the parsed BlobAddress
    :raises MalformedAddressError: if the string is not a blob address
    """
    match = _address_regexp.fullmatch(address) if isinstance(address, str) else None
    if match is None:
        raise MalformedAddressError(f"Bad blob address: {address}")
    try:
        parameters = dict(parse_qsl(match.group("query") or "", keep_blank_values=True, strict_parsing=True))
    except ValueError:
        raise MalformedAddressError(f"Bad blob address parameters: {address}") from None
    return BlobAddress(match.group("schema"), match.group("identifier"), parameters)


def format_address(address: BlobAddress) -> str:
    """Inverse of parse_address; parameters are emitted in their given order."""
    result = f"{address.schema}:{address.identifier}"
    if address.parameters:
        result += "?" + urlencode(address.parameters)
    return result


def make_row_address(text_id: int) -> BlobAddress:
    """
    Address of a row in the text table.

    :param text_id: positive row id
    """
    if isinstance(text_id, bool) or not isinstance(text_id, int) or text_id < 1:
        raise MalformedAddressError(f"Bad text id: {text_id!r}")
    return BlobAddress(ROW_SCHEMA, str(text_id))


def row_id_of(address: str | BlobAddress) -> int:
    """
    Row id a ``tt:`` address points at.

    The identifier must be the canonical decimal form of a positive integer:
    ``tt:0``, ``tt:-1``, ``tt:01`` and ``tt:xy`` are all rejected.

    :raises MalformedAddressError: for any other schema or a bad identifier
    """
    if not isinstance(address, BlobAddress):
        address = parse_address(address)
    if address.schema != ROW_SCHEMA:
        raise MalformedAddressError(f"Not a text row address: {address}")
    if not _text_id_regexp.fullmatch(address.identifier):
        raise MalformedAddressError(f"Bad blob address: {address}")
    return int(address.identifier)
