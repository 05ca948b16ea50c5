"""Shared fixtures: an app wired to an in-memory flag store and known sessions."""
from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from admin_api.app import app
from admin_api.sessions import Principal, SessionRegistry
from financbase.flags.service import FlagService
from financbase.flags.store import InMemoryFlagStore


@pytest.fixture
def flag_store():
    return InMemoryFlagStore()


@pytest.fixture
def flag_service(flag_store):
    return FlagService(flag_store)


@pytest.fixture
async def client(flag_service):
    """Async HTTP client wired to the FastAPI app."""
    registry = SessionRegistry()
    registry.register("admin-token", Principal(user_id="admin-123", organization_id="org-123", is_admin=True))
    registry.register("user-token", Principal(user_id="user-123", organization_id="org-123", plan="pro"))
    registry.register("no-org-token", Principal(user_id="user-456"))
    app.state.sessions = registry
    app.state.flag_service = flag_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    del app.state.sessions
    del app.state.flag_service
