"""Unit tests for external store access."""

import pytest

from sqlblob.envelope import deflate
from sqlblob.errors import ExternalStoreError
from sqlblob.external import ExternalStoreAccess, split_url
from sqlblob.hash import content_id
from sqlblob.settings import config
from sqlblob.storage import StorageBackend


class TestSplitUrl:
    """Test split_url function."""

    def test_valid(self):
        assert split_url("DB://cluster1/12345") == ("DB", "cluster1", "12345")

    def test_nested_object_id(self):
        assert split_url("DB://cluster1/a/b") == ("DB", "cluster1", "a/b")

    @pytest.mark.parametrize(
        "url",
        ["someNonUrlText", "someProtocol://", "DB://cluster1", "DB://cluster1/", "://cluster1/5", "DB:/cluster1/5"],
    )
    def test_malformed(self, url):
        assert split_url(url) is None


class TestFetch:
    def test_fetch(self, external_access):
        assert external_access.fetch("ForTesting://cluster1/12345") == deflate(b"AAAABBAAA")

    def test_malformed_url(self, external_access):
        assert external_access.fetch("someNonUrlText") is None
        assert external_access.fetch("someProtocol://") is None

    def test_unknown_scheme(self, external_access):
        with pytest.raises(ExternalStoreError, match="Unknown external store scheme"):
            external_access.fetch("Nowhere://cluster1/12345")

    def test_missing_object(self, external_access):
        with pytest.raises(ExternalStoreError):
            external_access.fetch("ForTesting://cluster1/99999")

    def test_fetch_many(self, external_access):
        result = external_access.fetch_many(
            ["ForTesting://cluster1/12345", "ForTesting://cluster1/99999", "someNonUrlText"]
        )
        assert result == {
            "ForTesting://cluster1/12345": deflate(b"AAAABBAAA"),
            "ForTesting://cluster1/99999": None,
            "someNonUrlText": None,
        }


class TestInsert:
    """Test writing payloads to external stores."""

    def test_insert(self, external_access, external_dir):
        url = external_access.insert(b"payload")
        assert url == f"ForTesting://cluster1/{content_id(b'payload')}"
        assert (external_dir / "cluster1" / content_id(b"payload")).read_bytes() == b"payload"
        assert external_access.fetch(url) == b"payload"

    def test_insert_is_idempotent(self, external_access):
        assert external_access.insert(b"payload") == external_access.insert(b"payload")

    def test_no_write_location(self, external_dir):
        access = ExternalStoreAccess({"ForTesting": {"protocol": "file", "location": str(external_dir)}})
        with pytest.raises(ExternalStoreError, match="No external store write location"):
            access.insert(b"payload")

    def test_falls_through_to_next_location(self, external_dir):
        access = ExternalStoreAccess(
            {"ForTesting": {"protocol": "file", "location": str(external_dir)}},
            write_locations=["Broken://cluster0", "ForTesting://cluster1"],
        )
        assert access.insert(b"payload").startswith("ForTesting://cluster1/")

    def test_all_locations_fail(self, external_dir):
        access = ExternalStoreAccess({}, write_locations=["Broken://cluster0"])
        with pytest.raises(ExternalStoreError, match="All external store write locations failed"):
            access.insert(b"payload")

    def test_bad_location(self, external_dir):
        access = ExternalStoreAccess({}, write_locations=["no-cluster"])
        with pytest.raises(ExternalStoreError, match="Bad external store write location"):
            access.insert(b"payload")


class TestFromConfig:
    def test_from_config(self, external_dir):
        stores = {"ForTesting": {"protocol": "file", "location": str(external_dir)}}
        with config(stores=stores, external_write_locations=["ForTesting://cluster1"]):
            access = ExternalStoreAccess.from_config()
        assert isinstance(access.get_store("ForTesting"), StorageBackend)
        assert access.write_locations == ("ForTesting://cluster1",)
        assert access.fetch("ForTesting://cluster1/12345") == deflate(b"AAAABBAAA")

    def test_backend_instances_are_kept(self, external_dir):
        backend = StorageBackend({"protocol": "file", "location": str(external_dir)})
        assert ExternalStoreAccess({"DB": backend}).get_store("DB") is backend
