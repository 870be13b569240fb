import pytest

from sqlblob.flags import BlobFlags


class TestBlobFlags:
    """Test parsing and serializing blob flags."""

    def test_parse_string(self):
        assert BlobFlags.parse("utf-8,gzip") == BlobFlags.UTF8 | BlobFlags.GZIP

    def test_order_insensitive(self):
        assert BlobFlags.parse("gzip,external") == BlobFlags.parse("external,gzip")

    def test_whitespace_and_case(self):
        assert BlobFlags.parse(" GZIP , utf-8 ") == BlobFlags.GZIP | BlobFlags.UTF8

    def test_utf8_alias(self):
        assert BlobFlags.parse("utf8") == BlobFlags.UTF8

    def test_unknown_tokens_ignored(self):
        assert BlobFlags.parse("gzip,frobnicated") == BlobFlags.GZIP

    @pytest.mark.parametrize("empty", [None, "", [], b""])
    def test_empty(self, empty):
        assert BlobFlags.parse(empty) == BlobFlags.NONE

    def test_iterable(self):
        assert BlobFlags.parse(["external", "gzip"]) == BlobFlags.EXTERNAL | BlobFlags.GZIP

    def test_bytes(self):
        assert BlobFlags.parse(b"object,utf-8") == BlobFlags.OBJECT | BlobFlags.UTF8

    def test_flags_pass_through(self):
        flags = BlobFlags.ERROR | BlobFlags.GZIP
        assert BlobFlags.parse(flags) is flags

    def test_serialize_fixed_order(self):
        flags = BlobFlags.ERROR | BlobFlags.EXTERNAL | BlobFlags.OBJECT | BlobFlags.GZIP | BlobFlags.UTF8
        assert flags.serialize() == "utf-8,gzip,object,external,error"
        assert str(BlobFlags.parse("gzip,utf8")) == "utf-8,gzip"

    def test_serialize_none(self):
        assert BlobFlags.NONE.serialize() == ""

    def test_round_trip(self):
        flags = BlobFlags.GZIP | BlobFlags.EXTERNAL
        assert BlobFlags.parse(flags.serialize()) == flags
