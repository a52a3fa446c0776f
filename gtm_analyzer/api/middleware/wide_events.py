"""
Wide Events Middleware for FastAPI.

Opens a canonical log event when a request arrives, lets handlers enrich it
(see ``add_job_to_wide_event``) and emits it once the response is ready.
"""

from collections.abc import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from gtm_analyzer.core.logging import (
    emit_wide_event,
    enrich_event,
    finalize_request_event,
    init_request_event,
)


class WideEventMiddleware(BaseHTTPMiddleware):
    """One comprehensive log entry per request."""

    # Health probes generate too much noise
    SKIP_PATHS = {"/", "/api/health", "/api/ready", "/favicon.ico"}

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        init_request_event(
            request_id=request.headers.get("x-request-id"),
            method=request.method,
            path=request.url.path,
            client_ip=self._get_client_ip(request),
            user_agent=request.headers.get("user-agent", ""),
        )

        error: Exception | None = None
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response

        except Exception as e:
            error = e
            status_code = getattr(e, "status_code", 500)
            raise

        finally:
            emit_wide_event(finalize_request_event(status_code, error))

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP, respecting proxy headers."""
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"


def add_job_to_wide_event(
    job_id: str | None = None,
    job_status: str | None = None,
    url: str | None = None,
    mode: str | None = None,
) -> None:
    """Add job context to the wide event."""
    enrich_event(
        job={
            "id": job_id,
            "status": job_status,
            "url": url[:200] if url else None,
            "mode": mode,
        }
    )
