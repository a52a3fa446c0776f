"""
API Middleware package.

- Wide Events: canonical log line per request
"""

from gtm_analyzer.api.middleware.wide_events import (
    WideEventMiddleware,
    add_job_to_wide_event,
)

__all__ = [
    "WideEventMiddleware",
    "add_job_to_wide_event",
]
