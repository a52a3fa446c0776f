"""
Unit tests for the job scheduler.

Uses the stub fetcher so ordering and concurrency can be observed without
touching the network.
"""

import asyncio

import pytest

from gtm_analyzer.core.exceptions import FetchError
from gtm_analyzer.core.models import JobStatus
from gtm_analyzer.services.job_store import JobStore
from gtm_analyzer.worker.scheduler import Scheduler
from tests.stubs import StubFetcher

pytestmark = pytest.mark.asyncio

PAGE = '<html><head><script src="https://www.googletagmanager.com/gtm.js?id=GTM-ABC123"></script></head></html>'

A = "https://a.example.com/"
B = "https://b.example.com/"
C = "https://c.example.com/"


def make_scheduler(fetcher: StubFetcher) -> tuple[Scheduler, JobStore]:
    store = JobStore()
    return Scheduler(store, fetcher), store


def enqueue(scheduler: Scheduler, store: JobStore, job_id: str, url: str) -> None:
    store.create(job_id)
    scheduler.submit(job_id, url)


class TestOrdering:
    async def test_jobs_run_one_at_a_time_in_fifo_order(self):
        fetcher = StubFetcher(pages={A: PAGE, B: PAGE, C: PAGE}, delay=0.01)
        scheduler, store = make_scheduler(fetcher)

        enqueue(scheduler, store, "1", A)
        enqueue(scheduler, store, "2", B)
        enqueue(scheduler, store, "3", C)
        await scheduler.wait_idle()

        assert fetcher.events == [
            ("start", A), ("end", A),
            ("start", B), ("end", B),
            ("start", C), ("end", C),
        ]
        assert fetcher.max_in_flight == 1
        assert store.counts() == {"pending": 0, "done": 3, "error": 0}

    async def test_submit_returns_before_any_fetch(self):
        fetcher = StubFetcher(pages={A: PAGE})
        scheduler, store = make_scheduler(fetcher)

        enqueue(scheduler, store, "1", A)

        assert fetcher.events == []
        assert scheduler.is_busy is True
        assert scheduler.pending_count == 1
        assert store.get("1").status is JobStatus.PENDING

        await scheduler.wait_idle()
        assert store.get("1").status is JobStatus.DONE

    async def test_submit_while_busy_reuses_running_drain(self):
        fetcher = StubFetcher(pages={A: PAGE, B: PAGE}, delay=0.01)
        scheduler, store = make_scheduler(fetcher)

        enqueue(scheduler, store, "1", A)
        task = scheduler._task
        enqueue(scheduler, store, "2", B)

        assert scheduler._task is task
        await scheduler.wait_idle()
        assert fetcher.max_in_flight == 1

    async def test_loop_restarts_after_going_idle(self):
        fetcher = StubFetcher(pages={A: PAGE, B: PAGE})
        scheduler, store = make_scheduler(fetcher)

        enqueue(scheduler, store, "1", A)
        await scheduler.wait_idle()
        assert scheduler.is_busy is False

        enqueue(scheduler, store, "2", B)
        await scheduler.wait_idle()
        assert store.get("2").status is JobStatus.DONE


class TestFailures:
    async def test_fetch_failure_marks_error_and_queue_continues(self):
        fetcher = StubFetcher(
            pages={B: PAGE},
            failures={A: FetchError("Timeout of 7s exceeded", A, "timeout")},
        )
        scheduler, store = make_scheduler(fetcher)

        enqueue(scheduler, store, "1", A)
        enqueue(scheduler, store, "2", B)
        await scheduler.wait_idle()

        failed = store.get("1")
        assert failed.status is JobStatus.ERROR
        assert failed.error_message == "Timeout of 7s exceeded"
        assert failed.result is None

        done = store.get("2")
        assert done.status is JobStatus.DONE
        assert done.result.is_gtm_found is True

    async def test_unexpected_exception_is_recorded(self):
        fetcher = StubFetcher(pages={B: PAGE}, failures={A: RuntimeError("boom")})
        scheduler, store = make_scheduler(fetcher)

        enqueue(scheduler, store, "1", A)
        enqueue(scheduler, store, "2", B)
        await scheduler.wait_idle()

        assert store.get("1").error_message == "Unexpected error: boom"
        assert store.get("2").status is JobStatus.DONE

    async def test_missing_job_does_not_stop_the_loop(self):
        fetcher = StubFetcher(pages={A: PAGE, B: PAGE})
        scheduler, store = make_scheduler(fetcher)

        scheduler.submit("ghost", A)
        enqueue(scheduler, store, "2", B)
        await scheduler.wait_idle()

        assert store.get("ghost") is None
        assert store.get("2").status is JobStatus.DONE


class TestAnalyzeNow:
    async def test_returns_result(self):
        fetcher = StubFetcher(pages={A: PAGE})
        scheduler, _ = make_scheduler(fetcher)

        result = await scheduler.analyze_now(A)

        assert result.url == A
        assert result.gtm_domain == "www.googletagmanager.com"

    async def test_propagates_fetch_error(self):
        scheduler, _ = make_scheduler(StubFetcher())

        with pytest.raises(FetchError) as exc_info:
            await scheduler.analyze_now(A)
        assert exc_info.value.reason == "connect_error"

    async def test_shares_single_fetch_slot_with_queue(self):
        fetcher = StubFetcher(pages={A: PAGE, B: PAGE}, delay=0.02)
        scheduler, store = make_scheduler(fetcher)

        enqueue(scheduler, store, "1", A)
        await asyncio.gather(scheduler.analyze_now(B), scheduler.wait_idle())

        assert fetcher.max_in_flight == 1
        assert store.get("1").status is JobStatus.DONE


    async def test_injected_clock_times_each_job(self):
        ticks = []

        def clock() -> float:
            ticks.append(None)
            return float(len(ticks))

        scheduler = Scheduler(JobStore(), StubFetcher(pages={A: PAGE}), clock=clock)
        scheduler.store.create("1")
        scheduler.submit("1", A)
        await scheduler.wait_idle()

        assert len(ticks) == 2
        assert scheduler.store.get("1").status is JobStatus.DONE


class TestShutdown:
    async def test_shutdown_cancels_and_leaves_jobs_pending(self):
        fetcher = StubFetcher(pages={A: PAGE, B: PAGE}, delay=5)
        scheduler, store = make_scheduler(fetcher)

        enqueue(scheduler, store, "1", A)
        enqueue(scheduler, store, "2", B)
        await asyncio.sleep(0.01)
        await scheduler.shutdown()

        assert scheduler.is_busy is False
        assert scheduler.pending_count == 1
        assert store.get("1").status is JobStatus.PENDING
        assert store.get("2").status is JobStatus.PENDING

    async def test_shutdown_before_drain_starts_leaves_scheduler_usable(self):
        fetcher = StubFetcher(pages={A: PAGE, B: PAGE})
        scheduler, store = make_scheduler(fetcher)

        enqueue(scheduler, store, "1", A)
        await scheduler.shutdown()

        assert scheduler.is_busy is False
        assert fetcher.events == []

        enqueue(scheduler, store, "2", B)
        await asyncio.wait_for(scheduler.wait_idle(), timeout=2)

        assert store.get("1").status is JobStatus.DONE
        assert store.get("2").status is JobStatus.DONE

    async def test_shutdown_when_idle_is_noop(self):
        scheduler, _ = make_scheduler(StubFetcher())
        await scheduler.shutdown()
        assert scheduler.is_busy is False
