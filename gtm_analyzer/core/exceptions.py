"""
Exception hierarchy for GTM Analyzer.

Every error raised by the service derives from GTMAnalyzerException so the
API layer can map it onto a JSON error envelope in one place.
"""

from typing import Any


class GTMAnalyzerException(Exception):
    """Base exception carrying a human-readable message and optional details."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(GTMAnalyzerException):
    """Caller input was rejected before reaching the job pipeline."""


class ResourceNotFoundError(GTMAnalyzerException):
    """A requested resource does not exist (or has expired)."""


class JobNotFoundError(ResourceNotFoundError):
    """No job is registered under the given id."""

    def __init__(self, job_id: str):
        super().__init__("Job not found", details={"job_id": job_id})
        self.job_id = job_id


class ConflictError(GTMAnalyzerException):
    """The operation conflicts with the current state of a resource."""


class ExternalServiceError(GTMAnalyzerException):
    """A remote system could not be reached or misbehaved."""


class FetchError(ExternalServiceError):
    """Retrieving the target page failed (timeout, DNS, connection, scheme)."""

    def __init__(self, message: str, url: str, reason: str = "request_error"):
        super().__init__(message, details={"url": url, "reason": reason})
        self.url = url
        self.reason = reason


class AnalysisError(GTMAnalyzerException):
    """The retrieved document could not be analyzed."""
