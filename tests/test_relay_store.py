"""Tests for the reply correlation store."""

import asyncio

import pytest

from nanorelay.forward.models import RelayEntry
from nanorelay.forward.relay_store import RelayStore

ORIGIN = RelayEntry("onebot", "100", "B0", "100")
OTHER = RelayEntry("discord", "200", "B1")


class TestTtl:
    """Entries are visible strictly before the TTL and gone at or after it."""

    def test_visible_before_ttl(self, clock):
        store = RelayStore(ttl_ms=1000, clock=clock)
        store.put("M", ORIGIN)
        clock.advance_ms(999)
        assert store.get("M") == ORIGIN

    def test_absent_at_ttl(self, clock):
        store = RelayStore(ttl_ms=1000, clock=clock)
        store.put("M", ORIGIN)
        clock.advance_ms(1000)
        assert store.get("M") is None
        assert len(store) == 0

    def test_absent_after_ttl(self, clock):
        store = RelayStore(ttl_ms=1000, clock=clock)
        store.put("M", ORIGIN)
        clock.advance_ms(1500)
        assert store.get("M") is None

    def test_per_entry_ttl(self, clock):
        store = RelayStore(ttl_ms=1000, clock=clock)
        store.put("short", ORIGIN, ttl_ms=100)
        store.put("long", OTHER)
        clock.advance_ms(500)
        assert store.get("short") is None
        assert store.get("long") == OTHER

    def test_put_again_restarts_ttl(self, clock):
        store = RelayStore(ttl_ms=1000, clock=clock)
        store.put("M", ORIGIN)
        clock.advance_ms(800)
        store.put("M", OTHER)
        clock.advance_ms(800)
        assert store.get("M") == OTHER


class TestLookup:
    def test_unknown_id(self):
        assert RelayStore().get("missing") is None

    def test_get_has_no_side_effects(self, clock):
        store = RelayStore(ttl_ms=1000, clock=clock)
        store.put("M", ORIGIN)
        assert store.get("M") == ORIGIN
        assert store.get("M") == ORIGIN
        assert len(store) == 1

    def test_clear(self, clock):
        store = RelayStore(ttl_ms=1000, clock=clock)
        store.put("a", ORIGIN)
        store.put("b", OTHER)
        store.clear()
        assert len(store) == 0
        assert store.get("a") is None

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_rejects_non_positive_ttl(self, ttl):
        with pytest.raises(ValueError):
            RelayStore(ttl_ms=ttl)
        with pytest.raises(ValueError):
            RelayStore().put("M", ORIGIN, ttl_ms=ttl)


class TestTimers:
    """With a running loop, expired entries are removed without a lookup."""

    @pytest.mark.asyncio
    async def test_timer_removes_entry(self):
        store = RelayStore(ttl_ms=20)
        store.put("M", ORIGIN)
        assert len(store) == 1
        await asyncio.sleep(0.1)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_old_timer_does_not_remove_replacement(self):
        store = RelayStore(ttl_ms=20)
        store.put("M", ORIGIN)
        store.put("M", OTHER, ttl_ms=60_000)
        await asyncio.sleep(0.1)
        assert store.get("M") == OTHER
        store.clear()
