"""Unit tests for the flag pipeline."""

import logging

import pytest

from sqlblob.compression import compress_data, decompress_data
from sqlblob.envelope import ConcatenatedEnvelope, FlatEnvelope, deflate, inflate, pack_envelope
from sqlblob.flags import BlobFlags

TEXTS = ["", "hello", "sammansättningar", "ℵ ∀ 日本語", "x" * 10000]


class TestCompressData:
    def test_plain(self):
        assert compress_data("hello") == (b"hello", BlobFlags.UTF8)

    def test_gzip(self):
        blob, flags = compress_data("AAAABBAAA", compress=True)
        assert flags == BlobFlags.UTF8 | BlobFlags.GZIP
        assert inflate(blob) == b"AAAABBAAA"

    def test_legacy_encoding(self):
        blob, flags = compress_data("sammansättningar", legacy_encoding="windows-1252")
        assert blob == "sammansättningar".encode("windows-1252")
        assert flags == BlobFlags.NONE

    def test_legacy_encoding_falls_back_to_utf8(self):
        """Text the legacy encoding cannot represent is stored as UTF-8."""
        blob, flags = compress_data("日本語", legacy_encoding="windows-1252")
        assert blob == "日本語".encode("utf-8")
        assert flags == BlobFlags.UTF8

    def test_unknown_legacy_encoding_falls_back_to_utf8(self, caplog):
        with caplog.at_level(logging.WARNING, logger="sqlblob"):
            assert compress_data("sätt", legacy_encoding="no-such-codec") == ("sätt".encode("utf-8"), BlobFlags.UTF8)
        assert "Unknown legacy encoding no-such-codec" in caplog.text


class TestDecompressData:
    """Test reading payloads back according to their flags."""

    @pytest.mark.parametrize("compress", [False, True])
    @pytest.mark.parametrize("legacy_encoding", [None, "windows-1252"])
    @pytest.mark.parametrize("text", TEXTS)
    def test_round_trip(self, text, compress, legacy_encoding):
        blob, flags = compress_data(text, compress=compress, legacy_encoding=legacy_encoding)
        assert decompress_data(blob, flags, legacy_encoding=legacy_encoding) == text

    def test_empty_input_ignores_flags(self):
        assert decompress_data(b"", BlobFlags.GZIP | BlobFlags.OBJECT | BlobFlags.ERROR) == ""

    def test_gzip_vector(self):
        assert decompress_data(b"sttttr\x02\x12\x00", "gzip") == "AAAABBAAA"

    def test_corrupt_gzip(self, caplog):
        with caplog.at_level(logging.WARNING, logger="sqlblob"):
            assert decompress_data(b"DEAD BEEF", ["gzip"]) is None
        assert "inflate" in caplog.text

    def test_error_flag(self):
        assert decompress_data(b"whatever", "error") is None

    def test_string_input(self):
        assert decompress_data("plain text", "utf-8") == "plain text"

    def test_invalid_utf8(self):
        assert decompress_data(b"\xff\xfe\xfd", "utf-8") is None

    def test_legacy_decoding(self):
        blob = "sammansättningar".encode("windows-1252")
        assert decompress_data(blob, [], legacy_encoding="windows-1252") == "sammansättningar"

    def test_legacy_decoding_drops_invalid_bytes(self):
        assert decompress_data(b"ab\x81c", [], legacy_encoding="windows-1252") == "abc"

    def test_utf8_flag_overrides_legacy_encoding(self):
        blob = "sätt".encode("utf-8")
        assert decompress_data(blob, "utf-8", legacy_encoding="windows-1252") == "sätt"

    def test_unknown_legacy_encoding(self):
        assert decompress_data(b"abc", [], legacy_encoding="no-such-codec") is None

    def test_flat_envelope(self):
        blob = pack_envelope(FlatEnvelope("sätt".encode("utf-8")))
        assert decompress_data(blob, "object,utf-8") == "sätt"

    def test_compressed_concatenated_envelope(self):
        envelope = ConcatenatedEnvelope()
        envelope.add_item(b"previous revision")
        envelope.set_text(b"current revision")
        blob = deflate(pack_envelope(envelope))
        assert decompress_data(blob, "gzip,object,utf-8") == "current revision"

    def test_envelope_without_text(self):
        blob = pack_envelope(ConcatenatedEnvelope())
        assert decompress_data(blob, "object") is None

    def test_not_an_envelope(self):
        assert decompress_data(b'O:8:"stdClass":0:{}', "object") is None

    def test_external_flag_is_not_followed(self):
        """The pipeline treats an external payload as plain data."""
        assert decompress_data(b"DB://cluster1/5", "external,utf-8") == "DB://cluster1/5"
