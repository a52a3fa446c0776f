"""
Background processing: the single-concurrency job scheduler and the
retention sweeper for finished jobs.
"""

from gtm_analyzer.worker.retention import run_retention_loop, sweep_expired_jobs
from gtm_analyzer.worker.scheduler import Scheduler

__all__ = [
    "Scheduler",
    "run_retention_loop",
    "sweep_expired_jobs",
]
