"""Test configuration and fixtures."""

import os

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from docker_tar_push.core.types import RegistryConfig
from tests.helpers import FakeRegistry


async def _serve(fake: FakeRegistry):
    server = TestServer(fake.make_app())
    await server.start_server()
    fake.url = str(server.make_url("/")).rstrip("/")
    return server


@pytest_asyncio.fixture
async def fake_registry():
    """Fake registry answering with server-relative upload locations."""
    fake = FakeRegistry()
    server = await _serve(fake)
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def absolute_registry():
    """Fake registry answering with absolute upload locations."""
    fake = FakeRegistry(relative_locations=False)
    server = await _serve(fake)
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def auth_registry():
    """Fake registry requiring basic credentials."""
    fake = FakeRegistry(username="alice", password="s3cret")
    server = await _serve(fake)
    yield fake
    await server.close()


@pytest.fixture
def small_chunks():
    """Chunk size small enough to split test files into several requests."""
    return 1024


@pytest.fixture
def registry_config(fake_registry, small_chunks):
    return RegistryConfig(url=fake_registry.url, chunk_size=small_chunks)


# Pytest configuration
def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless a real registry is announced."""
    skip_integration = pytest.mark.skip(reason="Registry not available")

    for item in items:
        if (
            "integration" in item.keywords
            and os.getenv("REGISTRY_AVAILABLE", "false").lower() != "true"
        ):
            item.add_marker(skip_integration)
