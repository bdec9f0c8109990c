"""Unit tests for app/store/key_store.py — load/save with optimistic concurrency."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.errors import BackendUnavailable, ConcurrencyConflict
from app.store.key_store import KeyStore
from app.store.memory_backend import InMemoryDocumentBackend
from app.store.models import AccessKeyRecord, decode_collection

DOC_PATH = "keys.json"

pytestmark = pytest.mark.asyncio

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _record(access_key: str = "key-a", name: str = "alice") -> AccessKeyRecord:
    return AccessKeyRecord(
        name=name,
        access_key=access_key,
        bot_token="1:AAA",
        chat_id="42",
        created_at=NOW,
        expires_at=NOW + timedelta(days=30),
    )


class TestLoad:
    async def test_missing_document_is_empty_with_no_version(self, key_store: KeyStore) -> None:
        assert await key_store.load() == ([], None)

    async def test_malformed_document_keeps_version(self) -> None:
        backend = InMemoryDocumentBackend({DOC_PATH: b"not json"})
        store = KeyStore(backend, DOC_PATH)
        records, version = await store.load()
        assert records == []
        assert version == backend.version_of(DOC_PATH)

    async def test_malformed_document_can_be_overwritten(self) -> None:
        backend = InMemoryDocumentBackend({DOC_PATH: b""})
        store = KeyStore(backend, DOC_PATH)
        records, version = await store.load()
        await store.save(records + [_record()], version, "repair")
        assert [r.access_key for r in decode_collection(backend.content_of(DOC_PATH))] == ["key-a"]

    async def test_backend_failure_propagates(self) -> None:
        class Down(InMemoryDocumentBackend):
            async def fetch(self, path, *, if_none_match=None):
                raise BackendUnavailable("down")

        with pytest.raises(BackendUnavailable):
            await KeyStore(Down(), DOC_PATH).load()


class TestSave:
    async def test_first_save_creates_document(
        self, key_store: KeyStore, memory_backend: InMemoryDocumentBackend
    ) -> None:
        version = await key_store.save([_record()], None, "[Panel] Create key: alice")
        assert memory_backend.version_of(DOC_PATH) == version
        assert memory_backend.history[-1][0] == "[Panel] Create key: alice"

    async def test_round_trip_through_backend(self, key_store: KeyStore) -> None:
        await key_store.save([_record("key-a"), _record("key-b", "bob")], None, "seed")
        records, version = await key_store.load()
        assert [r.access_key for r in records] == ["key-a", "key-b"]
        assert version is not None

    async def test_stale_version_raises_conflict(self, key_store: KeyStore) -> None:
        await key_store.save([_record()], None, "seed")
        records, version = await key_store.load()

        # another writer commits in between
        await key_store.save(records + [_record("key-b")], version, "other")

        with pytest.raises(ConcurrencyConflict):
            await key_store.save(records + [_record("key-c")], version, "mine")
