# storefront_search/services/product_loader.py

"""Per-view loader for one collection, layered over the shared caches."""

import asyncio
import enum
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from storefront_search.config.settings import Settings
from storefront_search.filters.product_validator import ProductValidator
from storefront_search.models.product import Product
from storefront_search.services.scheduler import PeriodicTask
from storefront_search.storage.collection_cache import CollectionCache
from storefront_search.storage.smart_cache import SmartCache

logger = logging.getLogger("storefront_search.loader")

StateListener = Callable[["ProductLoader"], None]


class LoaderStatus(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class ProductLoader:
    """Loads the products of the collection a view is showing.

    Lookup order: smart cache, collection cache, then a full fetch.
    Only the most recently requested handle may change state: a
    fetch that resolves after the view moved on is dropped.  When a
    fetch fails, any previously fetched (even stale) products are
    served instead of an error.
    """

    def __init__(
        self,
        cache: CollectionCache,
        smart_cache: SmartCache | None = None,
        collection_handle: str | None = None,
        auto_refresh: bool = True,
        refresh_interval: float | None = None,
    ) -> None:
        self._cache = cache
        self._smart_cache = smart_cache
        self.collection_handle = collection_handle
        self.auto_refresh = auto_refresh

        self.products: list[Product] = []
        self.status = LoaderStatus.IDLE
        self.error: str | None = None
        self.cached = False
        self.retry_count = 0

        self._latest_request: str | None = None
        self._listeners: list[StateListener] = []
        self._unsubscribe: Callable[[], None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._auto_task = PeriodicTask(
            f"auto-refresh:{collection_handle or '-'}",
            Settings.AUTO_REFRESH_INTERVAL
            if refresh_interval is None
            else refresh_interval,
            self._auto_refresh,
        )

    @property
    def loading(self) -> bool:
        return self.status is LoaderStatus.LOADING

    # ── Observers ────────────────────────────────────────

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* after every applied state change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.error("Loader listener failed", exc_info=True)

    def _apply(
        self,
        products: list[Product],
        status: LoaderStatus,
        cached: bool,
        error: str | None = None,
    ) -> None:
        self.products = products
        self.status = status
        self.cached = cached
        self.error = error
        self._notify()

    # ── Loading ──────────────────────────────────────────

    def _from_smart_cache(self, handle: str) -> list[Product] | None:
        if self._smart_cache is None:
            return None
        records = self._smart_cache.get(handle)
        if not records:
            return None
        products, _ = ProductValidator.validate(records)
        return [p.with_collection(handle) for p in products] or None

    async def load(
        self,
        collection_handle: str | None = None,
        force_refresh: bool = False,
    ) -> None:
        """Load *collection_handle* (default: the current one)."""
        handle = collection_handle or self.collection_handle
        if not handle:
            return
        if handle != self.collection_handle:
            self._retarget(handle)
        self._latest_request = handle

        if not force_refresh:
            instant = self._from_smart_cache(handle)
            if instant is not None:
                logger.debug(
                    "Smart cache served %d products for '%s'",
                    len(instant),
                    handle,
                )
                self._apply(instant, LoaderStatus.SUCCESS, cached=True)
                return

            cached = self._cache.get_from_cache(handle)
            if cached is not None:
                logger.debug(
                    "Collection cache served %d products for '%s'",
                    len(cached),
                    handle,
                )
                self._apply(cached, LoaderStatus.SUCCESS, cached=True)
                return

        # Clear immediately so two collections never mix on screen
        self._apply([], LoaderStatus.LOADING, cached=False)

        try:
            products = await self._cache.preload_collection(
                handle, force_refresh=force_refresh
            )
        except Exception as exc:
            if self._latest_request != handle:
                logger.debug("Dropping stale failure for '%s'", handle)
                return
            fallback = self._cache.get_from_cache(handle, allow_stale=True)
            if fallback:
                logger.info("Using fallback cache for '%s'", handle)
                self._apply(fallback, LoaderStatus.SUCCESS, cached=True)
                return
            self.retry_count += 1
            logger.error("Failed to load collection '%s': %s", handle, exc)
            self._apply(
                [],
                LoaderStatus.ERROR,
                cached=False,
                error=(
                    f"Unable to load products for {handle}. "
                    "Please try again."
                ),
            )
            return

        if self._latest_request != handle:
            logger.debug(
                "Discarding result for '%s'; '%s' was requested since",
                handle,
                self._latest_request,
            )
            return
        self.retry_count = 0
        self._apply(products, LoaderStatus.SUCCESS, cached=False)

    async def refresh(self) -> None:
        """Force a fresh load of the current collection."""
        self.retry_count = 0
        await self.load(force_refresh=True)

    # ── Lifecycle ────────────────────────────────────────

    def _retarget(self, handle: str) -> None:
        self.collection_handle = handle
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = self._cache.on_invalidate(
                handle, self._on_invalidate
            )

    def _on_invalidate(self, handle: str | None) -> None:
        logger.info(
            "Refreshing '%s' after cache invalidation", self.collection_handle
        )
        self._spawn(self.load(force_refresh=True))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _auto_refresh(self) -> None:
        if self.loading or self.retry_count > 0:
            return
        logger.debug("Auto-refreshing '%s'", self.collection_handle)
        await self.load()

    def start(self) -> None:
        """Subscribe to invalidations, start auto-refresh, load once."""
        if self._unsubscribe is None:
            self._unsubscribe = self._cache.on_invalidate(
                self.collection_handle, self._on_invalidate
            )
        if self.auto_refresh:
            self._auto_task.start()
        if self.collection_handle:
            self._spawn(self.load())

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self._auto_task.stop()
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
