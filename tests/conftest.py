"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

# Keep test runs quiet and fast regardless of the developer's environment.
os.environ.setdefault("QUEUE_POLL_INTERVAL_SECONDS", "0.01")
os.environ.setdefault("PUBLISH_RETRY_DELAY_SECONDS", "0")

from ingestq.api.main import create_app  # noqa: E402
from ingestq.config import Settings, get_settings  # noqa: E402
from ingestq.constants import ERROR_SEND_FAILURE  # noqa: E402
from ingestq.queue.memory import MemoryQueue  # noqa: E402
from ingestq.queue.sqlite import LocalQueue  # noqa: E402
from ingestq.types.error import SimpleError, new_simple_error  # noqa: E402
from ingestq.types.message import JsonValue  # noqa: E402
from ingestq.types.result import Result  # noqa: E402

# Poll interval used by queues built in tests
TEST_POLL_INTERVAL = 0.01


class FlakyQueue(MemoryQueue):
    """
    MemoryQueue whose first `failures` sends fail.

    Pass a negative count to fail every send. `sends` counts every call.
    """

    def __init__(self, failures: int = 0, error: SimpleError | None = None):
        super().__init__()
        self.failures = failures
        self.error = error
        self.sends = 0

    async def send(self, message: JsonValue) -> Result[None]:
        self.sends += 1
        if self.failures < 0 or self.sends <= self.failures:
            return Result.failure(
                self.error
                or new_simple_error("storage unavailable", name=ERROR_SEND_FAILURE)
            )
        return await super().send(message)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Make environment changes made by a test visible to get_settings()."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        queue_filename=":memory:",
        queue_poll_interval_seconds=TEST_POLL_INTERVAL,
        publish_retry_delay_seconds=0,
        log_level="DEBUG",
        log_format="console",
    )


@pytest.fixture
def queue_file(tmp_path: Path) -> str:
    """Path to a fresh SQLite file for a queue."""
    return str(tmp_path / "queue.db")


@pytest_asyncio.fixture
async def local_queue() -> AsyncGenerator[LocalQueue]:
    """An in-memory LocalQueue, disconnected after the test."""
    async with LocalQueue(":memory:", poll_interval=TEST_POLL_INTERVAL) as queue:
        yield queue


@pytest_asyncio.fixture
async def file_queue(queue_file: str) -> AsyncGenerator[LocalQueue]:
    """A file backed LocalQueue, disconnected after the test."""
    async with LocalQueue(queue_file, poll_interval=TEST_POLL_INTERVAL) as queue:
        yield queue


@pytest_asyncio.fixture
async def memory_queue() -> AsyncGenerator[MemoryQueue]:
    """A MemoryQueue."""
    async with MemoryQueue() as queue:
        yield queue


@pytest.fixture
def make_flaky_queue() -> type[FlakyQueue]:
    """Factory for queues whose sends fail on demand."""
    return FlakyQueue


@pytest.fixture
def app_queue() -> MemoryQueue:
    """Queue handed to the application under test."""
    return MemoryQueue()


@pytest.fixture
def app(app_queue: MemoryQueue) -> FastAPI:
    """Create a FastAPI app publishing into `app_queue`."""
    return create_app(queue=app_queue)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
