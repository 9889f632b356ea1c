# storefront_search/services/scheduler.py

"""Interval tasks that keep the search index and metrics in shape."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from storefront_search.config.settings import Settings
from storefront_search.services.search_metrics import SearchMetrics
from storefront_search.services.search_service import ProductSearchService

logger = logging.getLogger("storefront_search.scheduler")

Job = Callable[[], Awaitable[object] | object]


class PeriodicTask:
    """Runs *job* every *interval* seconds on the running event loop.

    The first run happens one interval after :meth:`start`.  A
    failing run is logged and the timer keeps going.
    """

    def __init__(self, name: str, interval: float, job: Job) -> None:
        self.name = name
        self.interval = interval
        self._job = job
        self._task: asyncio.Task[None] | None = None
        self.runs: int = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name=f"periodic:{self.name}"
        )
        logger.debug(
            "Started periodic task '%s' every %.1fs", self.name, self.interval
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Stopped periodic task '%s'", self.name)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                result = self._job()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error(
                    "Periodic task '%s' failed", self.name, exc_info=True
                )
            self.runs += 1


class BackgroundRefreshScheduler:
    """Periodic index rebuild plus periodic metrics trimming."""

    def __init__(
        self,
        search_service: ProductSearchService,
        metrics: SearchMetrics | None = None,
        refresh_interval: float | None = None,
        cleanup_interval: float | None = None,
    ) -> None:
        metrics = metrics or search_service.metrics
        self.index_refresh = PeriodicTask(
            "index-refresh",
            Settings.INDEX_REFRESH_INTERVAL
            if refresh_interval is None
            else refresh_interval,
            search_service.refresh_in_background,
        )
        self.metrics_cleanup = PeriodicTask(
            "metrics-cleanup",
            Settings.METRICS_CLEANUP_INTERVAL
            if cleanup_interval is None
            else cleanup_interval,
            metrics.cleanup_metrics,
        )

    @property
    def running(self) -> bool:
        return self.index_refresh.running or self.metrics_cleanup.running

    def start(self) -> None:
        self.index_refresh.start()
        self.metrics_cleanup.start()
        logger.info("Background refresh scheduler started")

    async def stop(self) -> None:
        await self.index_refresh.stop()
        await self.metrics_cleanup.stop()
        logger.info("Background refresh scheduler stopped")
