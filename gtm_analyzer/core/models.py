"""
Core models and types for GTM Analyzer.

Everything that crosses the HTTP boundary is serialized with camelCase
aliases (``isGtmFound``, ``jobId``) while Python code uses snake_case.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Default clock for job timestamps."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================


class JobStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PENDING


# =============================================================================
# Base Models
# =============================================================================


class BaseSchema(BaseModel):
    """Base schema with camelCase wire format."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Analysis
# =============================================================================


class AnalysisResult(BaseSchema):
    """Outcome of running the GTM heuristic against one page.

    ``gtm_domain`` and ``is_proxified`` only carry meaning when
    ``is_gtm_found`` is true.
    """
    model_config = ConfigDict(frozen=True)

    url: str
    gtm_domain: str = ""
    is_proxified: bool = False
    is_gtm_found: bool = False


# =============================================================================
# Jobs
# =============================================================================


class Job(BaseSchema):
    """One asynchronous analysis request tracked by the JobStore."""

    id: str
    status: JobStatus = JobStatus.PENDING
    result: AnalysisResult | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None


@dataclass(frozen=True)
class QueueEntry:
    """Work item handed from submit() to the drain loop."""
    job_id: str
    url: str


# =============================================================================
# API Request/Response Models
# =============================================================================


class AnalyzeRequest(BaseSchema):
    url: str | None = Field(default=None, max_length=2048, description="Absolute http(s) URL to analyze")


class JobAccepted(BaseSchema):
    job_id: str


class JobResponse(BaseSchema):
    """Polling view of a job. ``result``/``error`` are omitted when unset."""
    status: JobStatus
    result: AnalysisResult | None = None
    error: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(status=job.status, result=job.result, error=job.error_message)
