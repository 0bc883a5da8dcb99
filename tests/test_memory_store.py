"""Tests for the in-memory document store and its snapshot persistence."""

import pytest

from realmauth.storage.documents import ACCOUNTS, AUTHORIZATIONS, decode_key, native_key
from realmauth.storage.memory import MemoryStore


class TestMemoryStore:
    def test_put_get_delete(self):
        store = MemoryStore()
        store.put(ACCOUNTS, "acme.c1", {"realm": "acme", "client_id": "c1"})

        assert store.get(ACCOUNTS, "acme.c1") == {"realm": "acme", "client_id": "c1"}
        assert store.delete(ACCOUNTS, "acme.c1") is True
        assert store.get(ACCOUNTS, "acme.c1") is None
        assert store.delete(ACCOUNTS, "acme.c1") is False

    def test_returned_documents_are_copies(self):
        store = MemoryStore()
        store.put(ACCOUNTS, "acme.c1", {"tags": ["a"]})

        doc = store.get(ACCOUNTS, "acme.c1")
        doc["tags"].append("b")

        assert store.get(ACCOUNTS, "acme.c1") == {"tags": ["a"]}

    def test_query_filters_on_equality(self):
        store = MemoryStore()
        store.put(ACCOUNTS, "acme.c1", {"realm": "acme", "user_id": "ann"})
        store.put(ACCOUNTS, "acme.c2", {"realm": "acme", "user_id": "bob"})
        store.put(ACCOUNTS, "globex.c3", {"realm": "globex", "user_id": "ann"})

        found = store.query(ACCOUNTS, realm="acme", user_id="ann")

        assert found == [{"realm": "acme", "user_id": "ann"}]
        assert len(store.query(ACCOUNTS, user_id="ann")) == 2
        assert store.query(AUTHORIZATIONS, token="x") == []

    def test_state_survives_restart(self, tmp_path):
        store = MemoryStore(fs_root=str(tmp_path))
        store.put(ACCOUNTS, "acme.c1", {"realm": "acme"})
        store.put(AUTHORIZATIONS, "acme.c1", {"token": "abc"})

        reloaded = MemoryStore(fs_root=str(tmp_path))

        assert reloaded.get(ACCOUNTS, "acme.c1") == {"realm": "acme"}
        assert reloaded.query(AUTHORIZATIONS, token="abc") == [{"token": "abc"}]
        assert (tmp_path / "state" / "documents.json").exists()

    def test_persist_failure_keeps_cause(self, tmp_path):
        store = MemoryStore(fs_root=str(tmp_path))
        (tmp_path / "state" / "documents.json").mkdir()

        with pytest.raises(RuntimeError) as excinfo:
            store.put(ACCOUNTS, "acme.c1", {"realm": "acme"})

        assert isinstance(excinfo.value.__cause__, OSError)

    def test_count(self):
        store = MemoryStore()
        store.put(ACCOUNTS, "a.1", {})
        store.put(ACCOUNTS, "a.2", {})
        assert store.count(ACCOUNTS) == 2
        assert store.count(AUTHORIZATIONS) == 0


class TestKeys:
    def test_native_key_roundtrip(self):
        encoded = native_key(ACCOUNTS, "acme.c1")
        assert encoded == "ACCOUNTS/acme.c1"
        assert decode_key(encoded) == (ACCOUNTS, "acme.c1")

    def test_decode_rejects_malformed(self):
        for bad in ("ACCOUNTS", "/acme.c1", "ACCOUNTS/"):
            with pytest.raises(ValueError):
                decode_key(bad)
