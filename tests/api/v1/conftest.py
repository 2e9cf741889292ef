"""Pytest fixtures for API testing."""

import pytest
from httpx import AsyncClient, ASGITransport
from fastapi import FastAPI

from chatflow.api.v1 import session


@pytest.fixture(scope="function")
async def client(chat_session):
    """Create async HTTP client bound to a fresh chat session."""
    # Inject dependencies into routers
    session.chat_session = chat_session

    # Create a test app without lifespan (to avoid conflicts)
    test_app = FastAPI(title="Chatflow Test")
    test_app.include_router(session.router)

    @test_app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": "1.0.0"}

    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    session.chat_session = None
