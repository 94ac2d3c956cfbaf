"""Fixtures for API integration tests."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from payroll_ledger.api.app import create_app

ACTOR_HEADERS = {"X-User-ID": "1"}
APPROVER_HEADERS = {"X-User-ID": "2"}


@pytest_asyncio.fixture
async def client(payroll, directory) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client bound to the test database."""
    app = create_app(service=payroll, directory=directory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
