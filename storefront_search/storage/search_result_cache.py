# storefront_search/storage/search_result_cache.py

"""Bounded LRU memo of search results."""

import logging
from collections import OrderedDict
from typing import Generic, TypeVar

from storefront_search.config.settings import Settings

logger = logging.getLogger("storefront_search.search_cache")

V = TypeVar("V")


class SearchResultCache(Generic[V]):
    """Maps ``(query, category, limit)`` keys to result sets.

    A hit moves the key to the most-recent end; inserting past
    capacity evicts the least recently used key.
    """

    def __init__(self, capacity: int | None = None) -> None:
        self._capacity: int = (
            Settings.SEARCH_CACHE_SIZE if capacity is None else capacity
        )
        self._entries: OrderedDict[str, V] = OrderedDict()

    @staticmethod
    def make_key(query: str, category: str | None, limit: int) -> str:
        return f"{query}_{category or 'all'}_{limit}"

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> V | None:
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: V) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = value
        while len(self._entries) > self._capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted search cache key '%s'", evicted)

    def clear(self) -> int:
        """Drop every memoized result; returns how many were dropped."""
        count = len(self._entries)
        self._entries.clear()
        if count:
            logger.debug("Search cache cleared (%d entries)", count)
        return count
