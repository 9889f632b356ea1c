# storefront_search/services/search_service.py

"""Instant product search over the local index, with memoized results."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from storefront_search.config.settings import Settings
from storefront_search.filters.product_validator import ProductValidator
from storefront_search.models.product import Product
from storefront_search.services.search_metrics import SearchMetrics
from storefront_search.storage.search_index import (
    IndexSearchResult,
    LocalSearchIndex,
    normalize_query,
)
from storefront_search.storage.search_result_cache import SearchResultCache
from storefront_search.storage.smart_cache import SmartCache
from storefront_search.stores.base_store import BaseCollectionStore

logger = logging.getLogger("storefront_search.search")


@dataclass
class SearchResponse:
    """What a search box receives for one query."""

    query: str
    products: list[Product] = field(default_factory=lambda: list[Product]())
    total_found: int = 0
    load_time_ms: float = 0.0
    from_cache: bool = False


class ProductSearchService:
    """Owns the local index, its result memo and the smart cache.

    The index warms itself from the ``all`` catalog on first use.
    ``total_found == 0`` always means nothing matched; while the
    index is still warming the search call simply has not returned.
    """

    def __init__(
        self,
        store: BaseCollectionStore,
        index: LocalSearchIndex | None = None,
        result_cache: SearchResultCache[IndexSearchResult] | None = None,
        smart_cache: SmartCache | None = None,
        metrics: SearchMetrics | None = None,
        index_ttl: float | None = None,
    ) -> None:
        self._store = store
        self.index = index or LocalSearchIndex()
        self.result_cache: SearchResultCache[IndexSearchResult] = (
            result_cache or SearchResultCache()
        )
        self.smart_cache = smart_cache or SmartCache()
        self.metrics = metrics or SearchMetrics()
        self._index_ttl: float = (
            Settings.SEARCH_INDEX_TTL if index_ttl is None else index_ttl
        )
        self._warmup: asyncio.Task[int] | None = None

    @property
    def is_ready(self) -> bool:
        return self.index.built_at > 0

    # ── Index lifecycle ──────────────────────────────────

    async def _rebuild(self) -> int:
        """Fetch the whole catalog and rebuild index and smart cache."""
        start = time.perf_counter()
        records = await asyncio.to_thread(
            self._store.fetch_collection, Settings.ALL_COLLECTIONS, True
        )
        products, _ = ProductValidator.validate(records)
        self.index.build_index(products)
        self.smart_cache.populate(records)
        logger.info(
            "Local index warmed with %d products in %.2fms",
            len(products),
            (time.perf_counter() - start) * 1000,
        )
        return len(products)

    async def _run_warmup(self) -> int:
        try:
            return await self._rebuild()
        finally:
            self._warmup = None

    async def warm_up(self) -> None:
        """Build the index unless it was built within the index TTL.

        Concurrent callers share one warm-up.  Failures propagate.
        """
        if self.index.is_fresh(self._index_ttl):
            return
        task = self._warmup
        if task is None:
            logger.info("Warming up local product index...")
            task = asyncio.ensure_future(self._run_warmup())
            self._warmup = task
        try:
            await asyncio.shield(task)
        except Exception as exc:
            logger.error("Failed to warm up local index: %s", exc)
            raise

    async def refresh_in_background(self) -> bool:
        """Unconditionally rebuild the index, then drop memoized results.

        Errors are logged and swallowed; the previous index survives.
        """
        logger.info("Background refresh of product index...")
        try:
            count = await self._rebuild()
        except Exception as exc:
            logger.error(
                "Background refresh failed: %s", exc, exc_info=True
            )
            return False
        self.result_cache.clear()
        logger.info("Background refresh completed with %d products", count)
        return True

    def clear_all_caches(self) -> None:
        self.index.clear()
        self.result_cache.clear()
        self.smart_cache.clear()
        logger.info("All search caches cleared")

    def cache_stats(self) -> dict[str, Any]:
        return {
            "local_index_size": self.index.size,
            "search_cache_size": len(self.result_cache),
            "is_index_warmed_up": self.is_ready,
            "last_cache_sync": self.index.built_at,
        }

    # ── Search ───────────────────────────────────────────

    async def search_products_instant(
        self,
        query: str,
        category: str | None = None,
        limit: int | None = None,
    ) -> SearchResponse:
        """Search the catalog from memory, warming the index on first use.

        Identical ``(query, category, limit)`` searches between two
        index rebuilds are answered from the result memo.
        """
        start = time.perf_counter()
        if limit is None:
            limit = Settings.DEFAULT_SEARCH_LIMIT
        needle = normalize_query(query)
        key = SearchResultCache.make_key(needle, category, limit)

        cached = self.result_cache.get(key)
        if cached is not None:
            elapsed = (time.perf_counter() - start) * 1000
            logger.debug(
                "Memory cache hit for '%s' in %.2fms", query, elapsed
            )
            return SearchResponse(
                query=query,
                products=list(cached.products),
                total_found=cached.total_found,
                load_time_ms=elapsed,
                from_cache=True,
            )

        if not self.is_ready:
            await self.warm_up()

        result = self.index.search(needle, category, limit)
        self.result_cache.set(key, result)
        elapsed = (time.perf_counter() - start) * 1000
        self.metrics.track_search(needle, elapsed, len(result.products))
        logger.debug(
            "Local search '%s': %d of %d results in %.2fms",
            query,
            len(result.products),
            result.total_found,
            elapsed,
        )
        return SearchResponse(
            query=query,
            products=list(result.products),
            total_found=result.total_found,
            load_time_ms=elapsed,
            from_cache=False,
        )
