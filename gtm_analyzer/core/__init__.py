"""
Core package initialization.
"""

from gtm_analyzer.core.config import Settings, get_settings, settings
from gtm_analyzer.core.models import (
    AnalysisResult,
    AnalyzeRequest,
    Job,
    JobAccepted,
    JobResponse,
    JobStatus,
    QueueEntry,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "settings",
    # Enums
    "JobStatus",
    # Models
    "AnalysisResult",
    "AnalyzeRequest",
    "Job",
    "JobAccepted",
    "JobResponse",
    "QueueEntry",
]
