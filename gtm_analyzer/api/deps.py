"""
FastAPI dependencies resolving the application's shared components.
"""

from fastapi import Request

from gtm_analyzer.services.job_store import JobStore
from gtm_analyzer.worker.scheduler import Scheduler


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store
