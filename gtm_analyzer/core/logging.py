"""
Structured logging for GTM Analyzer.

Request logging follows the "canonical log line" pattern: the middleware
opens one event per request, handlers attach context to it with
``enrich_event`` (job id, analyzed URL, ...), and the finished event is
emitted once when the response leaves.

Background work (the queue drain loop, the retention sweeper) logs through
ordinary bound structlog loggers; those lines pick up the request id when
they happen inside a request.
"""

import logging
import os
import random
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import Processor

_request_event: ContextVar[dict[str, Any] | None] = ContextVar("request_event", default=None)
_request_start: ContextVar[float] = ContextVar("request_start", default=0.0)

SLOW_REQUEST_MS = 2000
SUCCESS_SAMPLE_RATE = 0.10
ALWAYS_KEEP_PATHS = ("/analyze", "/result")


def get_request_event() -> dict[str, Any]:
    """Get the current request's event for enrichment."""
    return _request_event.get() or {}


def enrich_event(**kwargs: Any) -> None:
    """
    Add fields to the current request's event.

    Dotted keys create nested objects::

        enrich_event(**{"job.id": job_id, "job.status": "pending"})

    Outside of a request this is a no-op.
    """
    event = _request_event.get()
    if event is None:
        return
    for key, value in kwargs.items():
        if "." in key:
            *parents, leaf = key.split(".")
            target = event
            for part in parents:
                target = target.setdefault(part, {})
            target[leaf] = value
        else:
            event[key] = value


def init_request_event(
    request_id: str | None = None,
    method: str = "",
    path: str = "",
    client_ip: str = "",
    user_agent: str = "",
) -> dict[str, Any]:
    """Start a new event for the request."""
    event: dict[str, Any] = {
        "request_id": request_id or str(uuid.uuid4())[:8],
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S.000Z", time.gmtime()),
        "http": {
            "method": method,
            "path": path,
            "client_ip": client_ip,
            "user_agent": user_agent[:200] if user_agent else None,
        },
        "service": {
            "name": "gtm-analyzer",
            "version": os.environ.get("APP_VERSION", "dev"),
            "environment": os.environ.get("ENVIRONMENT", "development"),
        },
    }

    _request_event.set(event)
    _request_start.set(time.time())
    return event


def finalize_request_event(
    status_code: int,
    error: Exception | None = None,
) -> dict[str, Any]:
    """Attach response data to the event and return it for emission."""
    event = _request_event.get() or {}
    start_time = _request_start.get()

    event.setdefault("http", {})["status_code"] = status_code
    event["duration_ms"] = int((time.time() - start_time) * 1000)
    event["outcome"] = "success" if status_code < 400 else "error"

    if error:
        event["error"] = {
            "type": type(error).__name__,
            "message": str(error)[:500],
        }
        details = getattr(error, "details", None)
        if details:
            event["error"]["details"] = details

    return event


def should_sample(event: dict[str, Any]) -> bool:
    """
    Tail sampling decision.

    Keeps every error, every slow request and every job-related request;
    samples the remaining successful requests.
    """
    if event.get("http", {}).get("status_code", 200) >= 400:
        return True

    if event.get("duration_ms", 0) > SLOW_REQUEST_MS:
        return True

    path = event.get("http", {}).get("path", "")
    if path.startswith(ALWAYS_KEEP_PATHS):
        return True

    return random.random() < SUCCESS_SAMPLE_RATE


def add_request_id(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Processor adding the current request id to every log entry."""
    current = _request_event.get()
    if current and "request_id" in current:
        event_dict.setdefault("request_id", current["request_id"])
    return event_dict


def configure_logging(json_logs: bool = True, log_level: str = "INFO") -> None:
    """
    Configure structlog.

    Args:
        json_logs: JSON lines when True (production), coloured console otherwise.
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        add_request_id,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )


def emit_wide_event(event: dict[str, Any]) -> None:
    """Emit the canonical log line for a request, subject to sampling."""
    if not should_sample(event):
        return

    logger = structlog.get_logger("wide_event")
    status_code = event.get("http", {}).get("status_code", 200)

    if status_code >= 500:
        logger.error("request_completed", **event)
    elif status_code >= 400:
        logger.warning("request_completed", **event)
    else:
        logger.info("request_completed", **event)
