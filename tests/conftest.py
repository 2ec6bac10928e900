"""
Core configuration
"""

import pytest_asyncio
import structlog

from intelgroups.config.settings import Settings
from intelgroups.service.audio import AudioCache
from intelgroups.service.mock import MockLedger, RecordingGateway
from intelgroups.store.documents import DocumentStore
from intelgroups.store.mock import MockFileStore

ADMIN_ID = "999"
ADMIN_PASSWORD = "hunter2"


@pytest_asyncio.fixture
def server_settings():
    yield Settings(
        _env_file=None,
        store_type="memory",
        ledger_type="mock",
        admin_id=ADMIN_ID,
        admin_password=ADMIN_PASSWORD,
        bot_token="TOKEN",
    )


@pytest_asyncio.fixture
def logger():
    yield structlog.get_logger()


@pytest_asyncio.fixture
def file_store():
    yield MockFileStore()


@pytest_asyncio.fixture
def documents(file_store: MockFileStore, server_settings: Settings):
    yield DocumentStore(
        files=file_store, write_attempts=server_settings.write_attempts
    )


@pytest_asyncio.fixture
def ledger(server_settings: Settings):
    yield MockLedger(
        premium_price=server_settings.premium_price,
        referral_share=server_settings.referral_share,
    )


@pytest_asyncio.fixture
def gateway():
    yield RecordingGateway()


@pytest_asyncio.fixture
def audio_cache():
    yield AudioCache(maxsize=8, ttl=60)
