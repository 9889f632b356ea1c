# storefront_search/services/health_checker.py

"""Collection store connectivity health check."""

import asyncio
import logging
import time
from dataclasses import dataclass

from storefront_search.config.settings import Settings
from storefront_search.stores.base_store import BaseCollectionStore

logger = logging.getLogger("storefront_search.health")


@dataclass
class HealthResult:
    """Result of one collection store probe."""

    store_name: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    message: str
    product_count: int = 0


def probe_store(store: BaseCollectionStore) -> HealthResult:
    """Fetch the full catalog once and classify the store by latency."""
    start = time.monotonic()
    try:
        records = store.fetch_collection(Settings.ALL_COLLECTIONS)
    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult(
            store_name=store.store_name,
            status="down",
            latency_ms=elapsed_ms,
            message=str(exc)[:80],
        )
    elapsed_ms = (time.monotonic() - start) * 1000

    if not records:
        return HealthResult(
            store_name=store.store_name,
            status="down",
            latency_ms=elapsed_ms,
            message="Catalog is empty",
        )

    if elapsed_ms > Settings.SLOW_STORE_LATENCY_MS:
        return HealthResult(
            store_name=store.store_name,
            status="slow",
            latency_ms=elapsed_ms,
            message="High latency",
            product_count=len(records),
        )

    return HealthResult(
        store_name=store.store_name,
        status="ok",
        latency_ms=elapsed_ms,
        message="",
        product_count=len(records),
    )


async def check_store(store: BaseCollectionStore) -> HealthResult:
    """Run :func:`probe_store` off the event loop and log the outcome."""
    result = await asyncio.to_thread(probe_store, store)
    logger.info(
        "Health check %s: %s (%.0fms, %d products) %s",
        result.store_name,
        result.status,
        result.latency_ms,
        result.product_count,
        result.message,
    )
    return result
