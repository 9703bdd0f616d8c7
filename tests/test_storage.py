"""
Tests for document stores.

Tests the abstract document store interface and the in-memory implementation.
"""

import pytest

from platformtrust.exceptions import DuplicateRecordError, StorageError
from platformtrust.storage import AbstractDocumentStore, MemoryDocumentStore, StorageConfig


class TestMemoryDocumentStore:
    """Test MemoryDocumentStore."""

    def test_is_document_store(self):
        assert isinstance(MemoryDocumentStore(), AbstractDocumentStore)
        assert MemoryDocumentStore(StorageConfig(database="x")).config.database == "x"

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, store):
        """Test connection lifecycle."""
        assert await store.health_check()
        await store.disconnect()
        assert not await store.health_check()

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        assert await store.get("platform", {"kid": "x"}) is None
        assert await store.get("platform") is None

    @pytest.mark.asyncio
    async def test_replace_without_upsert(self, store):
        assert await store.replace("c", {"id": 1}, {"id": 1, "v": "a"}) is False
        assert await store.get("c") is None

    @pytest.mark.asyncio
    async def test_upsert_merges_filter_into_record(self, store):
        assert await store.replace("c", {"id": 1}, {"v": "a"}, upsert=True)
        assert await store.get("c", {"id": 1}) == [{"id": 1, "v": "a"}]

        assert await store.replace("c", {"id": 1}, {"id": 1, "v": "b"}, upsert=True)
        assert await store.get("c") == [{"id": 1, "v": "b"}]

    @pytest.mark.asyncio
    async def test_filters_are_conjunctive(self, store):
        await store.replace("c", {"a": 1, "b": 1}, {}, upsert=True)
        await store.replace("c", {"a": 1, "b": 2}, {}, upsert=True)

        assert len(await store.get("c", {"a": 1})) == 2
        assert await store.get("c", {"a": 1, "b": 2}) == [{"a": 1, "b": 2}]
        assert await store.get("c", {"a": 1, "missing": None}) is None

    @pytest.mark.asyncio
    async def test_modify_and_delete(self, store):
        await store.replace("c", {"id": 1}, {"group": "x"}, upsert=True)
        await store.replace("c", {"id": 2}, {"group": "x"}, upsert=True)

        assert await store.modify("c", {"group": "x"}, {"flag": True}) == 2
        assert all(r["flag"] for r in await store.get("c"))

        assert await store.delete("c", {"id": 1}) == 1
        assert await store.delete("c", {"id": 1}) == 0
        assert await store.get("c") == [{"id": 2, "group": "x", "flag": True}]

    @pytest.mark.asyncio
    async def test_records_are_copied(self, store):
        record = {"nested": {"v": 1}}
        await store.replace("c", {"id": 1}, record, upsert=True)
        record["nested"]["v"] = 2

        fetched = (await store.get("c"))[0]
        fetched["nested"]["v"] = 3
        assert (await store.get("c"))[0]["nested"] == {"v": 1}

    @pytest.mark.asyncio
    async def test_unique_index_blocks_insert(self, store):
        await store.ensure_unique_index("platform", ("url", "client"))
        await store.ensure_unique_index("platform", ("url", "client"))
        await store.replace("platform", {"kid": "a"}, {"url": "u", "client": "c"}, upsert=True)

        with pytest.raises(DuplicateRecordError) as exc_info:
            await store.replace("platform", {"kid": "b"}, {"url": "u", "client": "c"}, upsert=True)
        assert isinstance(exc_info.value, StorageError)
        assert exc_info.value.fields == ("url", "client")
        assert len(await store.get("platform")) == 1

    @pytest.mark.asyncio
    async def test_unique_index_allows_replacing_same_record(self, store):
        await store.ensure_unique_index("platform", ("url",))
        await store.replace("platform", {"kid": "a"}, {"url": "u"}, upsert=True)
        assert await store.replace("platform", {"kid": "a"}, {"kid": "a", "url": "u", "n": 1})

    @pytest.mark.asyncio
    async def test_unique_index_blocks_modify(self, store):
        await store.ensure_unique_index("platform", ("url",))
        await store.replace("platform", {"kid": "a"}, {"url": "u1"}, upsert=True)
        await store.replace("platform", {"kid": "b"}, {"url": "u2"}, upsert=True)

        with pytest.raises(DuplicateRecordError):
            await store.modify("platform", {"kid": "b"}, {"url": "u1"})
        assert await store.get("platform", {"kid": "b"}) == [{"kid": "b", "url": "u2"}]
