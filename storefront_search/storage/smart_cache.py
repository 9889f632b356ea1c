# storefront_search/storage/smart_cache.py

"""Precomputed per-collection snapshot of the bulk catalog."""

import logging
import time
from typing import Any

from storefront_search.config.settings import Settings

logger = logging.getLogger("storefront_search.smart_cache")


def _positions(record: dict[str, Any]) -> dict[str, int]:
    raw = record.get("collection_positions", record.get("collectionPositions"))
    if not isinstance(raw, dict):
        return {}
    positions: dict[str, int] = {}
    for handle, position in raw.items():
        try:
            positions[str(handle)] = int(position)
        except (TypeError, ValueError):
            continue
    return positions


class SmartCache:
    """Groups bulk catalog records by collection handle.

    Populated wholesale from the ``all`` catalog whenever the search
    index is rebuilt; it never fetches by itself.  Only memberships the
    bulk view states with a listed position (``collection_positions``)
    are grouped, and each group is kept in that listed order.  A
    collection the bulk view carries no positions for is never served
    from here.  Records keep their raw upstream shape, callers
    normalise them into Products.
    """

    def __init__(self, ttl: float | None = None) -> None:
        self._ttl: float = Settings.SMART_CACHE_TTL if ttl is None else ttl
        self._collections: dict[str, list[dict[str, Any]]] = {}
        self._product_count: int = 0
        self._last_update: float = 0.0

    def populate(self, records: list[dict[str, Any]]) -> None:
        """Rebuild the grouping from *records*."""
        grouped: dict[str, list[tuple[int, dict[str, Any]]]] = {}
        self._product_count = 0
        for record in records:
            if not isinstance(record, dict):
                continue
            self._product_count += 1
            for handle, position in _positions(record).items():
                grouped.setdefault(handle, []).append((position, record))

        self._collections = {
            handle: [
                record
                for _, record in sorted(members, key=lambda m: m[0])
            ]
            for handle, members in grouped.items()
        }
        self._last_update = time.time()
        logger.info(
            "Smart cache built: %d products, %d collections",
            self._product_count,
            len(self._collections),
        )

    def get(self, handle: str) -> list[dict[str, Any]] | None:
        """Return the records of *handle*, or ``None`` if cold or stale."""
        if not self._last_update:
            return None
        if time.time() - self._last_update >= self._ttl:
            logger.debug("Smart cache stale, skipping '%s'", handle)
            return None
        records = self._collections.get(handle)
        if records is None:
            return None
        return list(records)

    def clear(self) -> None:
        self._collections.clear()
        self._product_count = 0
        self._last_update = 0.0
        logger.info("Smart cache cleared")

    def stats(self) -> dict[str, Any]:
        return {
            "products_count": self._product_count,
            "collections_count": len(self._collections),
            "last_update": self._last_update,
            "collections": sorted(self._collections),
        }
