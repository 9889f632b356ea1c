# storefront_search/services/storefront.py

"""Wires the caches, search service and schedulers for one storefront."""

import logging
import time
from dataclasses import dataclass, field
from types import TracebackType

from storefront_search.config.settings import Settings
from storefront_search.models.product import Product
from storefront_search.services.product_loader import ProductLoader
from storefront_search.services.scheduler import BackgroundRefreshScheduler
from storefront_search.services.search_service import (
    ProductSearchService,
    SearchResponse,
)
from storefront_search.storage.collection_cache import CollectionCache
from storefront_search.stores.base_store import BaseCollectionStore
from storefront_search.stores.catalog_store import CatalogSnapshotStore
from storefront_search.stores.edge_function_store import EdgeFunctionStore

logger = logging.getLogger("storefront_search.storefront")


@dataclass
class CollectionData:
    """Cache-only view of one collection."""

    handle: str
    products: list[Product] = field(default_factory=lambda: list[Product]())
    is_loaded: bool = False
    load_time_ms: float = 0.0


def build_store() -> BaseCollectionStore:
    """Pick the snapshot store when CATALOG_PATH is set, else the edge function."""
    if Settings.CATALOG_PATH is not None:
        logger.info("Using catalog snapshot %s", Settings.CATALOG_PATH)
        return CatalogSnapshotStore.from_file(Settings.CATALOG_PATH)
    return EdgeFunctionStore()


class Storefront:
    """Everything a storefront needs to list collections and search.

    Nothing runs until :meth:`start`; :meth:`stop` cancels every
    timer and loader this storefront started.
    """

    def __init__(
        self,
        store: BaseCollectionStore,
        collection_cache: CollectionCache | None = None,
        search_service: ProductSearchService | None = None,
        scheduler: BackgroundRefreshScheduler | None = None,
    ) -> None:
        self.store = store
        self.collection_cache = collection_cache or CollectionCache(store)
        self.search_service = search_service or ProductSearchService(store)
        self.scheduler = scheduler or BackgroundRefreshScheduler(
            self.search_service
        )
        self._loaders: list[ProductLoader] = []
        self._running = False

    @classmethod
    def from_settings(cls) -> "Storefront":
        return cls(build_store())

    # ── Lifecycle ────────────────────────────────────────

    async def start(self) -> None:
        self._running = True
        self.scheduler.start()
        for loader in self._loaders:
            loader.start()
        logger.info("Storefront started")

    async def stop(self) -> None:
        self._running = False
        await self.scheduler.stop()
        for loader in self._loaders:
            await loader.stop()
        logger.info("Storefront stopped")

    async def __aenter__(self) -> "Storefront":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # ── Collections ──────────────────────────────────────

    def create_loader(
        self,
        collection_handle: str | None = None,
        auto_refresh: bool = True,
    ) -> ProductLoader:
        """A loader sharing this storefront's caches; stopped with it."""
        loader = ProductLoader(
            self.collection_cache,
            smart_cache=self.search_service.smart_cache,
            collection_handle=collection_handle,
            auto_refresh=auto_refresh,
        )
        self._loaders.append(loader)
        if self._running:
            loader.start()
        return loader

    async def preload_collections(self, handles: list[str]) -> list[str]:
        return await self.collection_cache.preload_multiple_collections(
            handles
        )

    def get_optimized_collection_data(self, handle: str) -> CollectionData:
        """Read *handle* from the collection cache; never fetches."""
        start = time.perf_counter()
        products = self.collection_cache.get_from_cache(handle) or []
        return CollectionData(
            handle=handle,
            products=products,
            is_loaded=bool(products),
            load_time_ms=(time.perf_counter() - start) * 1000,
        )

    def get_all_collections_data(
        self, handles: list[str],
    ) -> list[CollectionData]:
        return [self.get_optimized_collection_data(h) for h in handles]

    def performance_stats(self, handles: list[str]) -> dict[str, object]:
        """Readiness and read latency of *handles* plus search stats."""
        data = self.get_all_collections_data(handles)
        average = (
            sum(d.load_time_ms for d in data) / len(data) if data else 0.0
        )
        return {
            "total_collections": len(handles),
            "loaded_collections": sum(1 for d in data if d.is_loaded),
            "average_load_time_ms": average,
            "all_collections_ready": all(d.is_loaded for d in data),
            "search": self.search_service.cache_stats(),
            "search_latency": self.search_service.metrics.stats(),
        }

    # ── Search ───────────────────────────────────────────

    async def search_products_instant(
        self,
        query: str,
        category: str | None = None,
        limit: int | None = None,
    ) -> SearchResponse:
        return await self.search_service.search_products_instant(
            query, category=category, limit=limit
        )

    def clear_all_caches(self) -> None:
        self.collection_cache.clear_cache()
        self.search_service.clear_all_caches()
