"""
Page fetcher for GTM Analyzer.

One bounded-time GET per call with a fixed header set. The timeout covers
the whole exchange (connect, redirects and body) and the body is capped at
``max_bytes``. Whatever body the server answers with is returned, error
pages included; only transport-level failures raise.
"""

import asyncio

import httpx
import structlog

from gtm_analyzer.core.config import Settings, get_settings
from gtm_analyzer.core.exceptions import FetchError

logger = structlog.get_logger()


class Fetcher:
    """
    Retrieve raw HTML for a URL.

    The underlying ``httpx.AsyncClient`` is created lazily and reused across
    calls; pass ``client`` to inject one (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        timeout: float = 7.0,
        user_agent: str = "Mozilla/5.0 (compatible; GTMAnalyzer/0.1)",
        accept: str = "text/html",
        max_redirects: int = 5,
        max_bytes: int = 5_000_000,
        client: httpx.AsyncClient | None = None,
    ):
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.max_bytes = max_bytes
        self.headers = {
            "User-Agent": user_agent,
            "Accept": accept,
        }
        self._client = client
        self.log = logger.bind(component="Fetcher")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Fetcher":
        settings = settings or get_settings()
        return cls(
            timeout=settings.fetch_timeout,
            user_agent=settings.fetch_user_agent,
            accept=settings.fetch_accept,
            max_redirects=settings.fetch_max_redirects,
            max_bytes=settings.fetch_max_bytes,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                max_redirects=self.max_redirects,
            )
        return self._client

    async def fetch(self, url: str, timeout: float | None = None) -> str:
        """
        GET ``url`` and return the response body as text.

        Args:
            url: Absolute URL to retrieve
            timeout: Override for the configured timeout, in seconds. Applies
                to the whole request, not to each read.

        Returns:
            Decoded response body, for any HTTP status code, cut off after
            ``max_bytes``

        Raises:
            FetchError: on timeout, DNS or connection failure, unsupported
                scheme, redirect loops or any other transport error
        """
        timeout = timeout if timeout is not None else self.timeout
        log = self.log.bind(url=url[:200])

        try:
            async with asyncio.timeout(timeout):
                status, final_url, body, encoding = await self._get(url, timeout)
        except (TimeoutError, httpx.TimeoutException) as e:
            log.warning("Fetch timed out", timeout=timeout)
            raise FetchError(f"Timeout of {timeout:g}s exceeded", url, "timeout") from e
        except httpx.InvalidURL as e:
            log.warning("Invalid URL")
            raise FetchError(f"Invalid URL: {e}", url, "invalid_url") from e
        except httpx.UnsupportedProtocol as e:
            log.warning("Unsupported URL scheme")
            raise FetchError(f"Unsupported URL scheme: {e}", url, "unsupported_scheme") from e
        except httpx.TooManyRedirects as e:
            log.warning("Too many redirects", max_redirects=self.max_redirects)
            raise FetchError("Too many redirects", url, "too_many_redirects") from e
        except httpx.ConnectError as e:
            log.warning("Connection failed", error=str(e))
            raise FetchError(f"Connection failed: {e}", url, "connect_error") from e
        except httpx.HTTPError as e:
            log.warning("Fetch failed", error=str(e))
            raise FetchError(f"Request failed: {e}", url) from e

        log.debug(
            "Fetched page",
            status=status,
            final_url=final_url[:200],
            bytes=len(body),
        )
        return body.decode(encoding, errors="replace")

    async def _get(self, url: str, timeout: float) -> tuple[int, str, bytes, str]:
        """Stream the response, keeping at most ``max_bytes`` of the body."""
        async with self.client.stream(
            "GET",
            url,
            headers=self.headers,
            timeout=timeout,
            follow_redirects=True,
        ) as response:
            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                received += len(chunk)
                if received >= self.max_bytes:
                    self.log.warning("Body truncated", url=url[:200], max_bytes=self.max_bytes)
                    break
            body = b"".join(chunks)[: self.max_bytes]
            return response.status_code, str(response.url), body, response.encoding or "utf-8"

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
