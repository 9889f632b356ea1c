# tests/test_scheduler.py

"""Tests for the periodic refresh and cleanup timers."""

import asyncio
import unittest
from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

from storefront_search.services.scheduler import (
    BackgroundRefreshScheduler,
    PeriodicTask,
)
from storefront_search.services.search_metrics import SearchMetrics


async def _wait_for(
    predicate: Callable[[], bool], timeout: float = 2.0,
) -> None:
    """Poll *predicate* until it holds or *timeout* elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestPeriodicTask(unittest.IsolatedAsyncioTestCase):
    """PeriodicTask unit tests."""

    async def test_runs_sync_job_repeatedly(self) -> None:
        calls: list[int] = []
        task = PeriodicTask("count", 0.01, lambda: calls.append(1))
        task.start()
        self.assertTrue(task.running)
        await _wait_for(lambda: len(calls) >= 2)
        await task.stop()
        self.assertFalse(task.running)

    async def test_runs_async_job(self) -> None:
        job = AsyncMock(return_value=True)
        task = PeriodicTask("async", 0.01, job)
        task.start()
        await _wait_for(lambda: job.await_count >= 1)
        await task.stop()

    async def test_failure_does_not_stop_timer(self) -> None:
        """A raising job is logged and the timer keeps going."""
        job = MagicMock(side_effect=RuntimeError("refresh exploded"))
        task = PeriodicTask("flaky", 0.01, job)
        task.start()
        await _wait_for(lambda: task.runs >= 3)
        self.assertTrue(task.running)
        await task.stop()

    async def test_start_is_idempotent(self) -> None:
        task = PeriodicTask("once", 10, lambda: None)
        task.start()
        first = task._task
        task.start()
        self.assertIs(task._task, first)
        await task.stop()

    async def test_stop_without_start(self) -> None:
        task = PeriodicTask("idle", 10, lambda: None)
        await task.stop()
        self.assertFalse(task.running)

    async def test_first_run_waits_one_interval(self) -> None:
        job = MagicMock()
        task = PeriodicTask("slow", 10, job)
        task.start()
        await asyncio.sleep(0.02)
        job.assert_not_called()
        await task.stop()


class TestBackgroundRefreshScheduler(unittest.IsolatedAsyncioTestCase):
    """BackgroundRefreshScheduler unit tests."""

    async def test_refresh_and_cleanup_both_run(self) -> None:
        service = MagicMock()
        service.refresh_in_background = AsyncMock(return_value=True)
        metrics = MagicMock(spec=SearchMetrics)
        scheduler = BackgroundRefreshScheduler(
            service, metrics, refresh_interval=0.01, cleanup_interval=0.01
        )
        scheduler.start()
        self.assertTrue(scheduler.running)
        await _wait_for(
            lambda: service.refresh_in_background.await_count >= 1
            and metrics.cleanup_metrics.call_count >= 1
        )
        await scheduler.stop()
        self.assertFalse(scheduler.running)

    async def test_defaults_to_service_metrics(self) -> None:
        service = MagicMock()
        scheduler = BackgroundRefreshScheduler(service)
        self.assertEqual(scheduler.index_refresh.interval, 1800.0)
        self.assertEqual(scheduler.metrics_cleanup.interval, 300.0)
        self.assertIs(
            scheduler.metrics_cleanup._job, service.metrics.cleanup_metrics
        )


if __name__ == "__main__":
    unittest.main()
