"""
An app wired to in-memory collaborators, and a client to call it with.
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from intelgroups.api.app import app
from intelgroups.api.dependencies import (
    SETTINGS,
    get_audio_cache,
    get_documents,
    get_gateway,
    get_ledger,
    logger as get_logger,
)


@pytest_asyncio.fixture
async def client(server_settings, documents, ledger, gateway, audio_cache, logger):
    app.dependency_overrides[SETTINGS] = lambda: server_settings
    app.dependency_overrides[get_documents] = lambda: documents
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_audio_cache] = lambda: audio_cache
    app.dependency_overrides[get_logger] = lambda: logger

    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
def admin_headers(server_settings):
    yield {"x-admin-password": server_settings.admin_password}
