"""Tests for the JSON channel store."""

import json

import pytest

from nanorelay.forward.errors import StoreError
from nanorelay.store.channels import ChannelStore


@pytest.fixture
def store(tmp_path):
    return ChannelStore(tmp_path / "channels.json")


class TestGet:
    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, store):
        assert await store.get("onebot", "100") is None

    @pytest.mark.asyncio
    async def test_fields_filter(self, store):
        await store.upsert([{"platform": "onebot", "id": "100", "forward": [], "name": "lobby"}])
        assert await store.get("onebot", "100", ["forward"]) == {"forward": []}
        assert await store.get("onebot", "100") == {
            "platform": "onebot", "id": "100", "forward": [], "name": "lobby",
        }

    @pytest.mark.asyncio
    async def test_rows_are_keyed_by_platform_and_id(self, store):
        await store.upsert([
            {"platform": "onebot", "id": "100", "forward": ["a"]},
            {"platform": "discord", "id": "100", "forward": ["b"]},
        ])
        assert (await store.get("onebot", "100"))["forward"] == ["a"]
        assert (await store.get("discord", "100"))["forward"] == ["b"]
        assert await store.get("telegram", "100") is None

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, store):
        store.path.write_text("{not json")
        with pytest.raises(StoreError):
            await store.get("onebot", "100")

    @pytest.mark.asyncio
    async def test_malformed_content_raises(self, store):
        store.path.write_text(json.dumps(["not", "an", "object"]))
        with pytest.raises(StoreError):
            await store.get("onebot", "100")

    @pytest.mark.asyncio
    async def test_non_object_row_raises(self, store):
        store.path.write_text(json.dumps({"channels": ["garbage-row"]}))
        with pytest.raises(StoreError):
            await store.get("onebot", "100")


class TestUpsert:
    @pytest.mark.asyncio
    async def test_insert_then_update(self, store):
        await store.upsert([{"platform": "onebot", "id": "100", "forward": [1]}])
        await store.upsert([{"platform": "onebot", "id": "100", "forward": [1, 2]}])

        data = json.loads(store.path.read_text())
        assert data == {"channels": [{"platform": "onebot", "id": "100", "forward": [1, 2]}]}

    @pytest.mark.asyncio
    async def test_update_keeps_other_fields(self, store):
        await store.upsert([{"platform": "onebot", "id": "100", "name": "lobby"}])
        await store.upsert([{"platform": "onebot", "id": "100", "forward": []}])
        assert await store.get("onebot", "100") == {
            "platform": "onebot", "id": "100", "name": "lobby", "forward": [],
        }

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, store):
        row = {"platform": "onebot", "id": "100", "forward": []}
        await store.upsert([row])
        await store.upsert([row])
        assert len(json.loads(store.path.read_text())["channels"]) == 1

    @pytest.mark.asyncio
    async def test_missing_key_field_raises(self, store):
        with pytest.raises(StoreError):
            await store.upsert([{"platform": "onebot", "forward": []}])

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, tmp_path):
        store = ChannelStore(tmp_path / "nested" / "dir" / "channels.json")
        await store.upsert([{"platform": "onebot", "id": "100"}])
        assert store.path.exists()
        assert not store.path.with_suffix(".json.tmp").exists()
