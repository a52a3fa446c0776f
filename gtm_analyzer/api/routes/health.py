"""
Health check endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from gtm_analyzer.api.deps import get_job_store, get_scheduler
from gtm_analyzer.services.job_store import JobStore
from gtm_analyzer.worker.scheduler import Scheduler

router = APIRouter()


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def root_probe() -> str:
    """Plain-text probe for load balancers."""
    return "OK"


@router.get("/api/health")
async def health_check() -> dict:
    """Basic health check."""
    return {"status": "healthy"}


@router.get("/api/ready")
async def readiness_check(
    scheduler: Annotated[Scheduler, Depends(get_scheduler)],
    store: Annotated[JobStore, Depends(get_job_store)],
) -> dict:
    """Readiness check with queue and job table state."""
    return {
        "status": "ready",
        "queue": {
            "pending": scheduler.pending_count,
            "busy": scheduler.is_busy,
        },
        "jobs": store.counts(),
    }
