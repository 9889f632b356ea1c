# storefront_search/services/search_metrics.py

"""Per-query search latency tracking with bounded memory."""

import logging
from dataclasses import dataclass

from storefront_search.config.settings import Settings

logger = logging.getLogger("storefront_search.metrics")


@dataclass
class SearchStats:
    """Aggregate latency figures over every tracked search."""

    average_search_time: float = 0.0
    slow_searches: int = 0
    total_searches: int = 0
    fastest_search: float = 0.0
    slowest_search: float = 0.0


class SearchMetrics:
    """Records search durations and flags slow queries."""

    def __init__(
        self,
        slow_threshold_ms: float | None = None,
        max_queries: int | None = None,
        keep_queries: int | None = None,
        keep_samples: int | None = None,
    ) -> None:
        self.slow_threshold_ms: float = (
            Settings.SLOW_SEARCH_THRESHOLD_MS
            if slow_threshold_ms is None
            else slow_threshold_ms
        )
        self._max_queries = (
            Settings.METRICS_MAX_QUERIES if max_queries is None else max_queries
        )
        self._keep_queries = (
            Settings.METRICS_KEEP_QUERIES
            if keep_queries is None
            else keep_queries
        )
        self._keep_samples = (
            Settings.METRICS_KEEP_SAMPLES
            if keep_samples is None
            else keep_samples
        )
        self._metrics: dict[str, list[float]] = {}

    def __len__(self) -> int:
        return len(self._metrics)

    def durations(self, query: str) -> list[float]:
        return list(self._metrics.get(query, []))

    def track_search(
        self, query: str, duration_ms: float, result_count: int,
    ) -> None:
        """Record one search; slow ones are analysed and logged."""
        self._metrics.setdefault(query, []).append(duration_ms)
        if duration_ms > self.slow_threshold_ms:
            logger.warning(
                "Slow search detected: '%s' took %.2fms", query, duration_ms
            )
            reasons = self.analyze_slow_search(query, result_count)
            logger.info(
                "Slow search '%s': %d results, potential reasons: %s",
                query,
                result_count,
                ", ".join(reasons) or "none identified",
            )

    @staticmethod
    def analyze_slow_search(query: str, result_count: int) -> list[str]:
        reasons: list[str] = []
        if result_count > 500:
            reasons.append("Large result set")
        if len(query) < 3:
            reasons.append("Very short query (broad search)")
        if " " in query:
            reasons.append("Multi-word query")
        return reasons

    def stats(self) -> SearchStats:
        samples = [d for durations in self._metrics.values() for d in durations]
        if not samples:
            return SearchStats()
        return SearchStats(
            average_search_time=sum(samples) / len(samples),
            slow_searches=sum(
                1 for d in samples if d > self.slow_threshold_ms
            ),
            total_searches=len(samples),
            fastest_search=min(samples),
            slowest_search=max(samples),
        )

    def cleanup_metrics(self) -> int:
        """Trim the metrics map once it grows past its bound.

        Keeps the most recently added queries and their latest
        samples.  Returns the number of queries dropped.
        """
        if len(self._metrics) <= self._max_queries:
            return 0
        entries = list(self._metrics.items())[-self._keep_queries:]
        dropped = len(self._metrics) - len(entries)
        self._metrics = {
            query: durations[-self._keep_samples:]
            for query, durations in entries
        }
        logger.debug("Trimmed search metrics (%d queries dropped)", dropped)
        return dropped

    def report(self) -> SearchStats:
        """Log a performance summary and return the underlying stats."""
        stats = self.stats()
        logger.info(
            "Search performance: %d searches, avg %.2fms, "
            "fastest %.2fms, slowest %.2fms, %d slow (>%.0fms)",
            stats.total_searches,
            stats.average_search_time,
            stats.fastest_search,
            stats.slowest_search,
            stats.slow_searches,
            self.slow_threshold_ms,
        )
        if stats.slow_searches:
            logger.warning(
                "%.1f%% of searches are slow",
                stats.slow_searches / stats.total_searches * 100,
            )
        return stats

    @staticmethod
    def recommended_debounce_ms(query: str) -> int:
        length = len(query)
        if length <= 1:
            return 500
        if length <= 2:
            return 300
        if length <= 3:
            return 200
        return 100
