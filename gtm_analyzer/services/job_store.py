"""
In-memory job table.

Jobs live for the lifetime of the process. The store enforces the job
lifecycle: created pending, finalized exactly once, never touched again.
Eviction of finished jobs is driven from outside via ``purge``.
"""

from collections import Counter
from collections.abc import Callable
from datetime import datetime

import structlog

from gtm_analyzer.core.exceptions import ConflictError, JobNotFoundError
from gtm_analyzer.core.models import AnalysisResult, Job, JobStatus, utcnow

logger = structlog.get_logger()


class JobStore:
    """Jobs keyed by id."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._jobs: dict[str, Job] = {}
        self._clock = clock
        self.log = logger.bind(component="JobStore")

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def create(self, job_id: str) -> Job:
        """Register a new pending job.

        Raises:
            ConflictError: if ``job_id`` is already registered
        """
        if job_id in self._jobs:
            raise ConflictError("Job already exists", details={"job_id": job_id})
        job = Job(id=job_id, created_at=self._clock())
        self._jobs[job_id] = job
        return job

    def get(self, job_id: str) -> Job | None:
        """Current record for ``job_id``, or None if unknown or purged."""
        return self._jobs.get(job_id)

    def set(
        self,
        job_id: str,
        status: JobStatus,
        *,
        result: AnalysisResult | None = None,
        error_message: str | None = None,
    ) -> Job:
        """
        Finalize a pending job as done or error.

        Raises:
            JobNotFoundError: if the job was never created
            ConflictError: if the job is already finalized or ``status`` is pending
            ValueError: if the payload does not match ``status``
        """
        current = self._jobs.get(job_id)
        if current is None:
            raise JobNotFoundError(job_id)
        if current.status.is_terminal:
            raise ConflictError(
                "Job already finalized",
                details={"job_id": job_id, "status": current.status.value},
            )
        if not status.is_terminal:
            raise ConflictError("Jobs can only move out of pending", details={"job_id": job_id})

        if status is JobStatus.DONE and result is None:
            raise ValueError("A done job needs a result")
        if status is JobStatus.ERROR and not error_message:
            raise ValueError("An error job needs an error message")

        job = current.model_copy(update={
            "status": status,
            "result": result if status is JobStatus.DONE else None,
            "error_message": error_message if status is JobStatus.ERROR else None,
            "completed_at": self._clock(),
        })
        self._jobs[job_id] = job
        return job

    def counts(self) -> dict[str, int]:
        """Number of jobs per status."""
        tally = Counter(job.status.value for job in self._jobs.values())
        return {status.value: tally.get(status.value, 0) for status in JobStatus}

    def purge(self, *, older_than: datetime, max_jobs: int | None = None) -> int:
        """
        Drop finished jobs.

        Removes every finished job completed before ``older_than``, then, if
        more than ``max_jobs`` jobs remain, the oldest finished ones until the
        table fits. Pending jobs are never removed.

        Returns:
            Number of removed jobs
        """
        expired = [
            job_id for job_id, job in self._jobs.items()
            if job.status.is_terminal and job.completed_at is not None and job.completed_at < older_than
        ]
        for job_id in expired:
            del self._jobs[job_id]
        removed = len(expired)

        if max_jobs is not None and len(self._jobs) > max_jobs:
            finished = sorted(
                (job for job in self._jobs.values() if job.status.is_terminal),
                key=lambda job: job.completed_at or job.created_at,
            )
            for job in finished[: len(self._jobs) - max_jobs]:
                del self._jobs[job.id]
                removed += 1

        if removed:
            self.log.info("Purged finished jobs", count=removed, remaining=len(self._jobs))
        return removed
