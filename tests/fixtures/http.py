"""
HTTP-related test fixtures
"""
import httpx
import pytest
import pytest_asyncio

from strata.testing import ASGIRecorder, TestClient, create_test_context


@pytest.fixture
def client(app):
    """In-memory ASGI client for the test application."""
    return TestClient(app)


@pytest_asyncio.fixture
async def http_client(app):
    """httpx client talking to the test application over ASGI."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def asgi_recorder():
    """ASGI send callable recording every message."""
    return ASGIRecorder()


@pytest.fixture
def make_context(app):
    """Factory for contexts bound to the test application."""

    def factory(method="GET", path="/", **kwargs):
        kwargs.setdefault("send", ASGIRecorder())
        return create_test_context(app, method, path, **kwargs)

    return factory
