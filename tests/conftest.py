"""Root pytest configuration for registry-v2 tests."""
import httpx
import pytest
import pytest_asyncio
from tenacity import wait_none

from registry_v2.client import Client
from registry_v2.settings import Settings

from .fakes.fake_registry import REGISTRY_HOST, FakeRegistry


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (opens local sockets)"
    )


# Set up test environment variables
@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Automatically set up test environment variables."""
    monkeypatch.setenv("REGV2_REGISTRY_URL", REGISTRY_HOST)
    for name in ("REGV2_REGISTRY_USERNAME", "REGV2_REGISTRY_PASSWORD", "REGV2_CA_CERT",
                 "REGV2_USER_AGENT", "REGV2_REGISTRY_INSECURE", "REGV2_HTTP_TIMEOUT",
                 "REGV2_CONNECT_TIMEOUT", "REGV2_CHUNK_RETRY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings():
    """Standard test settings."""
    return Settings(registry_url=REGISTRY_HOST)


@pytest.fixture
def registry():
    """Open registry (no token required)."""
    return FakeRegistry()


@pytest_asyncio.fixture
async def make_client():
    """
    Factory building Clients against a FakeRegistry or a bare transport.

    Keyword arguments become Settings fields. Clients are closed afterwards.
    """
    clients = []

    def _make(backend, **overrides) -> Client:
        transport = backend.transport() if isinstance(backend, FakeRegistry) else backend
        assert isinstance(transport, httpx.AsyncBaseTransport)
        client = Client(
            Settings(registry_url=REGISTRY_HOST, **overrides),
            transport=transport,
            retry_wait=wait_none(),
        )
        clients.append(client)
        return client

    yield _make
    for c in clients:
        await c.aclose()


@pytest.fixture
def client(registry, make_client):
    """Client wired to the standard fake registry."""
    return make_client(registry)
