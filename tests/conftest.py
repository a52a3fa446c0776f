"""
Pytest configuration and fixtures for GTM Analyzer tests.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from gtm_analyzer.api.main import create_app
from gtm_analyzer.core.config import Settings
from gtm_analyzer.core.exceptions import FetchError
from tests.stubs import StubFetcher


GTM_PAGE = """
<html><head>
<script async src="https://www.googletagmanager.com/gtm.js?id=GTM-ABC123"></script>
</head><body><p>Hello</p></body></html>
"""

PROXIFIED_PAGE = """
<html><head>
<script async src="//gtm.example.com/gtm.js?id=GTM-ABC123"></script>
</head><body></body></html>
"""

PLAIN_PAGE = """
<html><head><title>Nothing here</title>
<script src="/static/app.js"></script>
<script>console.log("hello");</script>
</head><body></body></html>
"""


@pytest.fixture
def test_settings() -> Settings:
    return Settings(debug=True, retention_sweep_interval=3600)


@pytest.fixture
def stub_fetcher() -> StubFetcher:
    return StubFetcher(
        pages={
            "https://example.com/": GTM_PAGE,
            "https://www.example.com/proxied": PROXIFIED_PAGE,
            "https://example.com/plain": PLAIN_PAGE,
        },
        failures={
            "https://slow.example.com/": FetchError("Timeout of 7s exceeded", "https://slow.example.com/", "timeout"),
        },
    )


@pytest_asyncio.fixture(scope="function")
async def app(test_settings: Settings, stub_fetcher: StubFetcher) -> AsyncGenerator[FastAPI, None]:
    """Fresh application wired to the stub fetcher."""
    application = create_app(settings=test_settings, fetcher=stub_fetcher)
    yield application
    await application.state.scheduler.shutdown()


@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the test application."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
