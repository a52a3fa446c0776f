"""
Job scheduler for GTM Analyzer.

Decouples accepting a job from running it. Submitted jobs go into a FIFO
queue that a single drain loop on the event loop works through strictly one
at a time: fetch the page, analyze it, record the outcome. At most one
outbound fetch is in flight per scheduler, whether it comes from the queue
or from ``analyze_now``.
"""

import asyncio
import contextlib
import time
from collections import deque
from collections.abc import Callable

import structlog

from gtm_analyzer.core.exceptions import AnalysisError, FetchError, GTMAnalyzerException
from gtm_analyzer.core.models import AnalysisResult, JobStatus, QueueEntry
from gtm_analyzer.services.analyzer import Analyzer
from gtm_analyzer.services.fetcher import Fetcher
from gtm_analyzer.services.job_store import JobStore

logger = structlog.get_logger()


class Scheduler:
    """
    Queue plus single-concurrency worker loop.

    Build one per application and share it; every collaborator is injected
    so tests can run several schedulers side by side.
    """

    def __init__(
        self,
        store: JobStore,
        fetcher: Fetcher,
        analyzer: Analyzer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.fetcher = fetcher
        self.analyzer = analyzer or Analyzer()
        self._clock = clock

        self._queue: deque[QueueEntry] = deque()
        self._busy = False
        self._task: asyncio.Task | None = None
        # Shared by the drain loop and analyze_now: one fetch at a time
        self._limit = asyncio.Lock()
        self.log = logger.bind(component="Scheduler")

    @property
    def pending_count(self) -> int:
        """Entries waiting in the queue (excluding the one being processed)."""
        return len(self._queue)

    @property
    def is_busy(self) -> bool:
        return self._busy

    def submit(self, job_id: str, url: str) -> None:
        """
        Queue ``url`` for analysis under ``job_id`` and return immediately.

        The job must already exist in the store. Must be called from the
        event loop; no network I/O happens before the caller resumes.
        """
        self._queue.append(QueueEntry(job_id=job_id, url=url))
        self.log.info("Job queued", job_id=job_id, url=url[:200], queue_length=len(self._queue))
        self._trigger()

    def _trigger(self) -> None:
        if self._busy:
            # The running drain will pick the new entry up
            return
        loop = asyncio.get_running_loop()
        self._busy = True
        self._task = loop.create_task(self._drain(), name="gtm-analyzer-drain")

    async def _drain(self) -> None:
        self.log.debug("Drain loop started", queue_length=len(self._queue))
        try:
            while self._queue:
                entry = self._queue.popleft()
                await self._process(entry)
        finally:
            self._busy = False
            self._task = None
        self.log.debug("Drain loop idle")

    async def _process(self, entry: QueueEntry) -> None:
        log = self.log.bind(job_id=entry.job_id, url=entry.url[:200])
        log.info("Processing job", queue_length=len(self._queue))
        start = self._clock()

        try:
            result = await self.analyze_now(entry.url)
        except (FetchError, AnalysisError) as e:
            log.warning(
                "Job failed",
                error=e.message,
                error_type=type(e).__name__,
                duration_ms=int((self._clock() - start) * 1000),
            )
            self._record(entry, JobStatus.ERROR, error_message=e.message)
        except Exception as e:
            # Never let one job take down the loop
            log.exception("Job crashed", error=str(e))
            self._record(entry, JobStatus.ERROR, error_message=f"Unexpected error: {str(e) or type(e).__name__}")
        else:
            log.info(
                "Job completed",
                is_gtm_found=result.is_gtm_found,
                is_proxified=result.is_proxified,
                gtm_domain=result.gtm_domain,
                duration_ms=int((self._clock() - start) * 1000),
            )
            self._record(entry, JobStatus.DONE, result=result)

    def _record(
        self,
        entry: QueueEntry,
        status: JobStatus,
        *,
        result: AnalysisResult | None = None,
        error_message: str | None = None,
    ) -> None:
        try:
            self.store.set(entry.job_id, status, result=result, error_message=error_message)
        except GTMAnalyzerException as e:
            self.log.error("Could not record job outcome", job_id=entry.job_id, error=e.message)

    async def analyze_now(self, url: str) -> AnalysisResult:
        """
        Fetch and analyze ``url`` while holding the single-fetch guard.

        Used by the drain loop and directly by the synchronous endpoint.

        Raises:
            FetchError: if the page could not be retrieved
            AnalysisError: if the page could not be analyzed
        """
        async with self._limit:
            html = await self.fetcher.fetch(url)
            return await asyncio.to_thread(self.analyzer.analyze, html, url)

    async def wait_idle(self) -> None:
        """Wait until the queue is drained and the loop has stopped."""
        while self._task is not None:
            await asyncio.wait({self._task})

    async def shutdown(self) -> None:
        """Stop the drain loop. Jobs still queued stay pending."""
        task = self._task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        # A drain cancelled before its first step never reaches its finally
        self._busy = False
        self._task = None
        if self._queue:
            self.log.warning("Scheduler stopped with queued jobs", queue_length=len(self._queue))
