# storefront_search/storage/collection_cache.py

"""Process-wide collection cache with TTL staleness and in-flight sharing."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from storefront_search.config.settings import Settings
from storefront_search.filters.product_validator import ProductValidator
from storefront_search.models.product import Product
from storefront_search.stores.base_store import BaseCollectionStore

logger = logging.getLogger("storefront_search.cache")

InvalidationCallback = Callable[[str | None], None]


@dataclass
class CacheEntry:
    """Products of one collection and the state of its last fetch."""

    key: str
    products: list[Product] = field(default_factory=lambda: list[Product]())
    last_updated: float = 0.0
    loading: bool = False
    expired: bool = False


class CollectionCache:
    """Maps collection handle to its ordered product list.

    One instance is shared by every loader of a storefront.  An entry
    is *stale* once ``now - last_updated >= ttl``.  Concurrent
    requests for the same handle await a single in-flight fetch; a
    failed fetch leaves the previous products in place.
    """

    def __init__(
        self,
        store: BaseCollectionStore,
        ttl: float | None = None,
        preload_delay: float | None = None,
    ) -> None:
        self._store = store
        self._ttl: float = (
            Settings.COLLECTION_CACHE_TTL if ttl is None else ttl
        )
        self._preload_delay: float = (
            Settings.PRELOAD_DELAY if preload_delay is None else preload_delay
        )
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task[list[Product]]] = {}
        self._listeners: dict[str | None, list[InvalidationCallback]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def _is_stale(self, entry: CacheEntry, now: float) -> bool:
        return entry.expired or now - entry.last_updated >= self._ttl

    def entry(self, handle: str) -> CacheEntry | None:
        """Return the raw entry for *handle* (diagnostics only)."""
        return self._entries.get(handle)

    def handles(self) -> list[str]:
        """Handles currently held, in first-request order."""
        return list(self._entries)

    # ── Reads ────────────────────────────────────────────

    def get_from_cache(
        self,
        handle: str,
        allow_stale: bool = False,
    ) -> list[Product] | None:
        """Return cached products without ever fetching.

        Returns ``None`` when the entry is missing, loading, or stale.
        With *allow_stale* the loading and TTL checks are skipped and
        any previously fetched products are returned (the last-resort
        fallback after a failed fetch).
        """
        entry = self._entries.get(handle)
        if entry is None:
            return None
        if allow_stale:
            if entry.last_updated == 0.0:
                return None
            return list(entry.products)
        if entry.loading or self._is_stale(entry, time.time()):
            return None
        return list(entry.products)

    # ── Fetching ─────────────────────────────────────────

    async def preload_collection(
        self,
        handle: str,
        force_refresh: bool = False,
    ) -> list[Product]:
        """Return fresh products for *handle*, fetching when needed.

        A fresh entry is served directly unless *force_refresh* is
        set.  Late callers join a fetch already in flight instead of
        starting their own.  Fetch failures propagate to every waiter
        and leave the previous products untouched.
        """
        entry = self._entries.get(handle)
        if (
            not force_refresh
            and entry is not None
            and not entry.loading
            and not self._is_stale(entry, time.time())
        ):
            logger.debug("Cache hit for collection '%s'", handle)
            return list(entry.products)

        pending = self._inflight.get(handle)
        if pending is None:
            if entry is None:
                entry = CacheEntry(key=handle)
                self._entries[handle] = entry
            entry.loading = True
            pending = asyncio.ensure_future(
                self._fetch(entry, force_refresh)
            )
            self._inflight[handle] = pending
        else:
            logger.debug("Joining in-flight fetch for '%s'", handle)

        products = await asyncio.shield(pending)
        return list(products)

    async def _fetch(
        self,
        entry: CacheEntry,
        force_refresh: bool,
    ) -> list[Product]:
        handle = entry.key
        try:
            records = await asyncio.to_thread(
                self._store.fetch_collection, handle, force_refresh
            )
            products, _ = ProductValidator.validate(records)
            if handle != Settings.ALL_COLLECTIONS:
                products = [p.with_collection(handle) for p in products]
        except Exception as exc:
            entry.loading = False
            logger.error(
                "Product loading failed for '%s': %s",
                handle,
                exc,
                exc_info=True,
            )
            raise
        finally:
            # A clear_cache() may have replaced this fetch already
            if self._inflight.get(handle) is asyncio.current_task():
                del self._inflight[handle]

        entry.products = products
        entry.last_updated = time.time()
        entry.loading = False
        entry.expired = False
        logger.info(
            "Cached %d products for collection '%s'",
            len(products),
            handle,
        )
        return products

    async def preload_multiple_collections(
        self, handles: list[str],
    ) -> list[str]:
        """Preload *handles* one after another with a small delay.

        A failing handle is logged and skipped.  Returns the handles
        that loaded successfully.
        """
        loaded: list[str] = []
        for handle in handles:
            try:
                await self.preload_collection(handle)
            except Exception as exc:
                logger.warning(
                    "Skipping collection '%s': %s", handle, exc
                )
                continue
            loaded.append(handle)
            if self._preload_delay > 0:
                await asyncio.sleep(self._preload_delay)
        return loaded

    # ── Invalidation ─────────────────────────────────────

    def clear_cache(self) -> int:
        """Wipe every entry and forget fetches in flight.

        Fetches already running still answer the callers that started
        them, but their results are not cached; a later request starts
        a fresh fetch.  Returns the number of entries that were removed.
        """
        count = len(self._entries)
        self._entries.clear()
        self._inflight.clear()
        logger.info("Collection cache purged (%d entries removed)", count)
        return count

    def on_invalidate(
        self,
        handle: str | None,
        callback: InvalidationCallback,
    ) -> Callable[[], None]:
        """Subscribe *callback* to invalidations of *handle*.

        ``handle=None`` subscribes to every invalidation.  Returns a
        function that removes the subscription.
        """
        self._listeners.setdefault(handle, []).append(callback)

        def unsubscribe() -> None:
            listeners = self._listeners.get(handle, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def invalidate(self, handle: str | None = None) -> None:
        """Mark *handle* (or every entry) stale and notify subscribers.

        Stale products are kept so they can still serve as fallback.
        """
        if handle is None:
            targets = list(self._entries.values())
        else:
            targets = [e for e in [self._entries.get(handle)] if e]
        for entry in targets:
            entry.expired = True

        logger.info("Invalidated collection cache (%s)", handle or "all")

        callbacks = list(self._listeners.get(None, []))
        if handle is None:
            for key, listeners in self._listeners.items():
                if key is not None:
                    callbacks.extend(listeners)
        else:
            callbacks.extend(self._listeners.get(handle, []))

        for callback in callbacks:
            try:
                callback(handle)
            except Exception:
                logger.error(
                    "Invalidation callback failed for '%s'",
                    handle,
                    exc_info=True,
                )
