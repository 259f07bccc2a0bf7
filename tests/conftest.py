"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Iterator

import pytest
from httpx import ASGITransport, AsyncClient

from fixtures.event_fixture import AckRecorder, RecordingPublisher
from tripupdate_processor.main import app
from tripupdate_processor.services.broker.worker import reset_worker
from tripupdate_processor.services.tripupdate.router import MessageRouter
from tripupdate_processor.services.tripupdate.state import TripStateStore


@pytest.fixture(autouse=True)
def _reset_worker_singleton() -> Iterator[None]:
    """Reset the worker singleton between tests."""
    reset_worker()
    yield
    reset_worker()


@pytest.fixture
def router() -> MessageRouter:
    return MessageRouter(store=TripStateStore())


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def acks() -> AckRecorder:
    return AckRecorder()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
