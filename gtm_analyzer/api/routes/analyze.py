"""
Analysis API.

Two ways to run the GTM heuristic against a page:

- ``POST /analyze`` queues a job and answers with its id right away; poll
  ``GET /result/{job_id}`` until the status leaves ``pending``.
- ``POST /analyze/sync`` runs fetch and analysis inside the request, under
  the same one-fetch-at-a-time guard as the queue.
"""

import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends

from gtm_analyzer.api.deps import get_job_store, get_scheduler
from gtm_analyzer.api.middleware import add_job_to_wide_event
from gtm_analyzer.core.exceptions import JobNotFoundError
from gtm_analyzer.core.models import AnalysisResult, AnalyzeRequest, JobAccepted, JobResponse
from gtm_analyzer.services.job_store import JobStore
from gtm_analyzer.services.url_utils import validate_target_url
from gtm_analyzer.worker.scheduler import Scheduler

logger = structlog.get_logger()
router = APIRouter()


@router.post(
    "/analyze",
    response_model=JobAccepted,
    summary="Queue a page for GTM analysis",
    responses={
        400: {"description": "URL is missing or not an absolute http(s) URL"},
        422: {"description": "url is not a string or is too long"},
    },
)
async def submit_analysis(
    request: AnalyzeRequest,
    store: Annotated[JobStore, Depends(get_job_store)],
    scheduler: Annotated[Scheduler, Depends(get_scheduler)],
) -> JobAccepted:
    """Create a pending job, queue it and return its id."""
    url = validate_target_url(request.url)

    job_id = str(uuid.uuid4())
    store.create(job_id)
    scheduler.submit(job_id, url)

    add_job_to_wide_event(job_id=job_id, job_status="pending", url=url, mode="async")
    return JobAccepted(job_id=job_id)


@router.post(
    "/analyze/sync",
    response_model=AnalysisResult,
    summary="Analyze a page and wait for the result",
    responses={
        400: {"description": "URL is missing or not an absolute http(s) URL"},
        502: {"description": "The page could not be fetched"},
    },
)
async def analyze_sync(
    request: AnalyzeRequest,
    scheduler: Annotated[Scheduler, Depends(get_scheduler)],
) -> AnalysisResult:
    """Fetch and analyze the page inside the request."""
    url = validate_target_url(request.url)
    add_job_to_wide_event(url=url, mode="sync")

    result = await scheduler.analyze_now(url)

    logger.info(
        "Synchronous analysis finished",
        url=url[:200],
        is_gtm_found=result.is_gtm_found,
        is_proxified=result.is_proxified,
    )
    return result


@router.get(
    "/result/{job_id}",
    response_model=JobResponse,
    response_model_exclude_none=True,
    summary="Poll a queued analysis",
    responses={404: {"description": "Unknown or expired job id"}},
)
async def get_result(
    job_id: str,
    store: Annotated[JobStore, Depends(get_job_store)],
) -> JobResponse:
    job = store.get(job_id)
    if job is None:
        raise JobNotFoundError(job_id)

    add_job_to_wide_event(job_id=job_id, job_status=job.status.value)
    return JobResponse.from_job(job)
