# tests/test_collection_cache.py

"""Tests for the shared collection cache."""

import asyncio
import threading
import time
import unittest
from typing import Any
from unittest.mock import patch

from storefront_search.storage.collection_cache import CollectionCache
from storefront_search.stores.base_store import (
    BaseCollectionStore,
    CollectionFetchError,
    CollectionNotFoundError,
)

_CLOCK = "storefront_search.storage.collection_cache.time.time"


def _rec(pid: str, title: str) -> dict[str, Any]:
    return {"id": pid, "title": title}


class FakeStore(BaseCollectionStore):
    """In-memory store that records calls and fails on demand."""

    def __init__(self, collections: dict[str, list[dict[str, Any]]]) -> None:
        super().__init__("fake")
        self.collections = collections
        self.failing: set[str] = set()
        self.gates: dict[str, threading.Event] = {}
        self.calls: list[tuple[str, bool]] = []

    def fetch_collection(
        self, handle: str, force_refresh: bool = False,
    ) -> list[dict[str, Any]]:
        self.calls.append((handle, force_refresh))
        gate = self.gates.get(handle)
        if gate is not None:
            gate.wait(timeout=5)
        if handle in self.failing:
            raise CollectionFetchError(f"boom: {handle}")
        if handle not in self.collections:
            raise CollectionNotFoundError(handle)
        return [dict(r) for r in self.collections[handle]]


class TestCollectionCache(unittest.IsolatedAsyncioTestCase):
    """CollectionCache unit tests."""

    def setUp(self) -> None:
        self.store = FakeStore(
            {
                "beer": [_rec("1", "Lazarus IPA"), _rec("2", "Hazy IPA")],
                "wine": [_rec("3", "Rosé")],
                "a": [_rec("a1", "Alpha")],
                "c": [_rec("c1", "Gamma")],
            }
        )
        self.cache = CollectionCache(self.store, ttl=300, preload_delay=0)

    # ── TTL ──────────────────────────────────────────────

    async def test_fresh_entry_served_from_cache(self) -> None:
        """Within the TTL the same list comes back without fetching."""
        loaded = await self.cache.preload_collection("beer")
        cached = self.cache.get_from_cache("beer")
        self.assertEqual(cached, loaded)
        assert cached is not None
        self.assertEqual([p.id for p in cached], ["1", "2"])

        await self.cache.preload_collection("beer")
        self.assertEqual(len(self.store.calls), 1)

    async def test_entry_fresh_just_before_ttl(self) -> None:
        await self.cache.preload_collection("beer")
        with patch(_CLOCK, return_value=time.time() + 299):
            self.assertIsNotNone(self.cache.get_from_cache("beer"))

    async def test_entry_stale_at_ttl(self) -> None:
        """get_from_cache returns None once age >= TTL."""
        await self.cache.preload_collection("beer")
        with patch(_CLOCK, return_value=time.time() + 300):
            self.assertIsNone(self.cache.get_from_cache("beer"))

    async def test_stale_entry_refetched(self) -> None:
        await self.cache.preload_collection("beer")
        with patch(_CLOCK, return_value=time.time() + 301):
            await self.cache.preload_collection("beer")
        self.assertEqual(len(self.store.calls), 2)

    async def test_missing_entry_is_none(self) -> None:
        self.assertIsNone(self.cache.get_from_cache("beer"))
        self.assertIsNone(self.cache.get_from_cache("beer", allow_stale=True))

    # ── Membership ───────────────────────────────────────

    async def test_products_tagged_with_collection(self) -> None:
        """A product served under H lists H in collection_handles."""
        products = await self.cache.preload_collection("beer")
        for p in products:
            self.assertIn("beer", p.collection_handles)

    async def test_malformed_records_dropped(self) -> None:
        self.store.collections["mixed"] = [
            _rec("1", "Good"),
            {"title": "No id"},
            {"id": "3", "title": ""},
        ]
        products = await self.cache.preload_collection("mixed")
        self.assertEqual([p.id for p in products], ["1"])

    # ── Failures ─────────────────────────────────────────

    async def test_failure_propagates_and_keeps_old_products(self) -> None:
        """A failed refetch re-raises but leaves the stale list in place."""
        await self.cache.preload_collection("beer")
        self.store.failing.add("beer")
        with patch(_CLOCK, return_value=time.time() + 400):
            with self.assertRaises(CollectionFetchError):
                await self.cache.preload_collection("beer")
            self.assertIsNone(self.cache.get_from_cache("beer"))
            fallback = self.cache.get_from_cache("beer", allow_stale=True)
        assert fallback is not None
        self.assertEqual([p.id for p in fallback], ["1", "2"])
        entry = self.cache.entry("beer")
        assert entry is not None
        self.assertFalse(entry.loading)

    async def test_unknown_handle_raises_not_found(self) -> None:
        with self.assertRaises(CollectionNotFoundError):
            await self.cache.preload_collection("nope")

    # ── In-flight sharing ────────────────────────────────

    async def test_concurrent_preloads_share_one_fetch(self) -> None:
        gate = threading.Event()
        self.store.gates["beer"] = gate

        first = asyncio.create_task(self.cache.preload_collection("beer"))
        second = asyncio.create_task(self.cache.preload_collection("beer"))
        await asyncio.sleep(0.05)
        # Loading entries are never served from cache
        self.assertIsNone(self.cache.get_from_cache("beer"))
        gate.set()
        r1, r2 = await asyncio.gather(first, second)

        self.assertEqual(self.store.calls, [("beer", False)])
        self.assertEqual(r1, r2)

    async def test_force_refresh_bypasses_fresh_entry(self) -> None:
        await self.cache.preload_collection("beer")
        await self.cache.preload_collection("beer", force_refresh=True)
        self.assertEqual(
            self.store.calls, [("beer", False), ("beer", True)]
        )

    # ── Batch preload ────────────────────────────────────

    async def test_multi_preload_isolates_failures(self) -> None:
        """'bad' failing does not stop 'a' and 'c' from loading."""
        self.store.failing.add("bad")
        loaded = await self.cache.preload_multiple_collections(
            ["a", "bad", "c"]
        )
        self.assertEqual(loaded, ["a", "c"])
        self.assertIsNotNone(self.cache.get_from_cache("a"))
        self.assertIsNotNone(self.cache.get_from_cache("c"))
        self.assertIsNone(self.cache.get_from_cache("bad"))
        self.assertEqual(
            [h for h, _ in self.store.calls], ["a", "bad", "c"]
        )

    # ── Invalidation ─────────────────────────────────────

    async def test_clear_cache(self) -> None:
        await self.cache.preload_collection("beer")
        await self.cache.preload_collection("wine")
        self.assertEqual(self.cache.clear_cache(), 2)
        self.assertEqual(self.cache.handles(), [])

    async def test_clear_during_fetch_caches_later_request(self) -> None:
        """A request made after a purge is cached even if an older fetch runs."""
        gate = threading.Event()
        self.store.gates["beer"] = gate

        before = asyncio.create_task(self.cache.preload_collection("beer"))
        await asyncio.sleep(0.05)
        self.cache.clear_cache()
        after = asyncio.create_task(self.cache.preload_collection("beer"))
        await asyncio.sleep(0.05)
        gate.set()
        r1, r2 = await asyncio.gather(before, after)

        self.assertEqual(r1, r2)
        self.assertEqual(len(self.store.calls), 2)
        cached = self.cache.get_from_cache("beer")
        assert cached is not None
        self.assertEqual([p.id for p in cached], ["1", "2"])
        self.assertEqual(self.cache.handles(), ["beer"])

    async def test_invalidate_marks_stale_keeps_fallback(self) -> None:
        await self.cache.preload_collection("beer")
        self.cache.invalidate("beer")
        self.assertIsNone(self.cache.get_from_cache("beer"))
        self.assertIsNotNone(
            self.cache.get_from_cache("beer", allow_stale=True)
        )

    async def test_invalidate_notifies_subscribers(self) -> None:
        seen: list[tuple[str, str | None]] = []
        self.cache.on_invalidate("beer", lambda h: seen.append(("beer", h)))
        self.cache.on_invalidate("wine", lambda h: seen.append(("wine", h)))
        self.cache.on_invalidate(None, lambda h: seen.append(("*", h)))

        self.cache.invalidate("beer")
        self.assertEqual(sorted(seen), [("*", "beer"), ("beer", "beer")])

        seen.clear()
        self.cache.invalidate()
        self.assertEqual(
            sorted(seen), [("*", None), ("beer", None), ("wine", None)]
        )

    async def test_unsubscribe_and_failing_callback(self) -> None:
        """A raising callback is logged; unsubscribed ones stay quiet."""
        calls: list[str | None] = []

        def broken(handle: str | None) -> None:
            raise RuntimeError("listener bug")

        self.cache.on_invalidate("beer", broken)
        unsubscribe = self.cache.on_invalidate("beer", calls.append)
        unsubscribe()
        with self.assertLogs("storefront_search.cache", level="ERROR"):
            self.cache.invalidate("beer")
        self.assertEqual(calls, [])


if __name__ == "__main__":
    unittest.main()
