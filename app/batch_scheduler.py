"""
Bounded-concurrency execution of render jobs.

Jobs are processed in consecutive windows of at most ``concurrency_limit``
jobs. All jobs of a window run concurrently; the next window starts only after
every job of the current one succeeded. Results are returned in job order, no
matter in which order the renders completed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from app.schemas import PdfRenderOptions

WINDOW_PAUSE_SECONDS = 0.005

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderJob:
    """One HTML page of a request, positioned by ``index`` in the output."""

    index: int
    html: str
    options: PdfRenderOptions


RenderWorker = Callable[[RenderJob], Awaitable[bytes]]


def plan_windows(job_count: int, limit: int) -> list[range]:
    """Split ``job_count`` job indices into consecutive windows of at most ``limit`` jobs."""
    if limit < 1:
        raise ValueError(f"Concurrency limit must be at least 1, got {limit}")
    return [range(start, min(start + limit, job_count)) for start in range(0, job_count, limit)]


class BatchScheduler:
    """
    Run render jobs window by window.

    Args:
        window_pause_seconds: Short pause between two windows so that the event
            loop and the browser can release the resources of the finished pages.
    """

    def __init__(self, window_pause_seconds: float = WINDOW_PAUSE_SECONDS) -> None:
        self.window_pause_seconds = window_pause_seconds

    async def run_all(self, jobs: Sequence[RenderJob], worker: RenderWorker, concurrency_limit: int) -> list[bytes]:
        """
        Execute ``worker`` for every job, never more than ``concurrency_limit`` at once.

        Returns:
            One result per job, ``results[i]`` belongs to ``jobs[i]``.

        Raises:
            The failure of the lowest-index failed job of the first window that
            failed. The remaining jobs of that window are cancelled and later
            windows are never started.
        """
        windows = plan_windows(len(jobs), concurrency_limit)
        results: list[bytes | None] = [None] * len(jobs)

        for window_number, window in enumerate(windows, start=1):
            if window_number > 1 and self.window_pause_seconds > 0:
                await asyncio.sleep(self.window_pause_seconds)

            logger.debug("Rendering window %d/%d (jobs %d-%d)", window_number, len(windows), window.start, window.stop - 1)
            window_results = await self._run_window([jobs[i] for i in window], worker)
            for position, result in zip(window, window_results):
                results[position] = result

        return [result for result in results if result is not None]

    async def _run_window(self, window_jobs: list[RenderJob], worker: RenderWorker) -> list[bytes]:
        tasks = [asyncio.ensure_future(worker(job)) for job in window_jobs]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await self._cancel(tasks)
            raise

        if pending:
            await self._cancel(list(pending))

        # Report the failure of the earliest page, independent of completion order
        for task in tasks:
            if task in done and not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]

        return [task.result() for task in tasks]

    @staticmethod
    async def _cancel(tasks: list[asyncio.Future[bytes]]) -> None:
        for task in tasks:
            task.cancel()
        # Wait until the cancelled renders closed their sessions
        await asyncio.gather(*tasks, return_exceptions=True)
