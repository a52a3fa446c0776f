"""
Unit tests for the page fetcher, using httpx.MockTransport.
"""

import asyncio
import contextlib
import time

import httpx
import pytest

from gtm_analyzer.core.config import Settings
from gtm_analyzer.core.exceptions import FetchError
from gtm_analyzer.services.fetcher import Fetcher


def make_fetcher(handler, **kwargs) -> Fetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    return Fetcher(client=client, **kwargs)


@pytest.mark.asyncio
class TestFetch:
    async def test_returns_body_and_sends_fixed_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user_agent"] = request.headers["user-agent"]
            seen["accept"] = request.headers["accept"]
            return httpx.Response(200, text="<html>ok</html>")

        fetcher = make_fetcher(handler, user_agent="TestAgent/1.0", accept="text/html")
        body = await fetcher.fetch("https://example.com/")

        assert body == "<html>ok</html>"
        assert seen == {"user_agent": "TestAgent/1.0", "accept": "text/html"}
        await fetcher.aclose()

    @pytest.mark.parametrize("status", [404, 500, 503])
    async def test_error_status_still_returns_body(self, status):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, text=f"<html>error {status}</html>")

        fetcher = make_fetcher(handler)
        assert await fetcher.fetch("https://example.com/missing") == f"<html>error {status}</html>"
        await fetcher.aclose()

    async def test_follows_redirects(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://example.com/new"})
            return httpx.Response(200, text="moved here")

        fetcher = make_fetcher(handler)
        assert await fetcher.fetch("https://example.com/old") == "moved here"
        await fetcher.aclose()


@pytest.mark.asyncio
class TestFetchErrors:
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = make_fetcher(handler, timeout=7.0)
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://slow.example.com/")

        assert exc_info.value.reason == "timeout"
        assert "7s" in exc_info.value.message
        await fetcher.aclose()

    async def test_connection_refused(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        fetcher = make_fetcher(handler)
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://down.example.com/")

        assert exc_info.value.reason == "connect_error"
        assert exc_info.value.url == "https://down.example.com/"
        await fetcher.aclose()

    async def test_connection_reset(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadError("Connection reset by peer", request=request)

        fetcher = make_fetcher(handler)
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://flaky.example.com/")

        assert exc_info.value.reason == "request_error"
        await fetcher.aclose()

    async def test_unsupported_scheme(self):
        fetcher = Fetcher()
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("ftp://example.com/file")

        assert exc_info.value.reason == "unsupported_scheme"
        await fetcher.aclose()


@contextlib.asynccontextmanager
async def drip_server(interval: float, chunks: int):
    """Local HTTP server that sends its body one byte every ``interval`` seconds."""
    handlers: list[asyncio.Task] = []

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        handlers.append(asyncio.current_task())
        try:
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: text/html\r\n"
                b"Content-Length: " + str(chunks).encode() + b"\r\n\r\n"
            )
            for _ in range(chunks):
                await writer.drain()
                await asyncio.sleep(interval)
                writer.write(b"x")
            await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}/"
    finally:
        for task in handlers:
            task.cancel()
        await asyncio.gather(*handlers, return_exceptions=True)
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
class TestLimits:
    async def test_timeout_bounds_whole_request(self):
        # Every single read finishes well within the timeout; the total does not
        async with drip_server(interval=0.2, chunks=20) as url:
            fetcher = Fetcher(timeout=0.5)
            start = time.monotonic()
            with pytest.raises(FetchError) as exc_info:
                await fetcher.fetch(url)
            elapsed = time.monotonic() - start
            await fetcher.aclose()

        assert exc_info.value.reason == "timeout"
        assert exc_info.value.message == "Timeout of 0.5s exceeded"
        assert elapsed < 1.5

    async def test_body_is_capped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>" + b"a" * 10_000)

        fetcher = make_fetcher(handler, max_bytes=64)
        body = await fetcher.fetch("https://big.example.com/")

        assert len(body) == 64
        assert body.startswith("<html>")
        await fetcher.aclose()


class TestFromSettings:
    def test_uses_configured_values(self):
        settings = Settings(
            fetch_timeout=12.5,
            fetch_user_agent="Custom/2.0",
            fetch_accept="text/html,*/*",
            fetch_max_bytes=1024,
        )
        fetcher = Fetcher.from_settings(settings)

        assert fetcher.timeout == 12.5
        assert fetcher.max_bytes == 1024
        assert fetcher.headers == {"User-Agent": "Custom/2.0", "Accept": "text/html,*/*"}
