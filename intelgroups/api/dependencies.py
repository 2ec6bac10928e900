"""
Dependencies used by the API.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from structlog import get_logger
from structlog.typing import FilteringBoundLogger

from intelgroups.config.settings import Settings
from intelgroups.service.audio import AudioCache
from intelgroups.service.ledger import BalanceLedger
from intelgroups.service.notify import TelegramGateway
from intelgroups.store.documents import DocumentStore


@lru_cache
def SETTINGS():
    return Settings()


@lru_cache
def get_documents() -> DocumentStore:
    settings = SETTINGS()
    return DocumentStore(
        files=settings.file_store(), write_attempts=settings.write_attempts
    )


@lru_cache
def get_ledger() -> BalanceLedger:
    return SETTINGS().ledger()


@lru_cache
def get_gateway() -> TelegramGateway:
    return SETTINGS().gateway()


@lru_cache
def get_audio_cache() -> AudioCache:
    return SETTINGS().audio_cache()


def logger():
    return get_logger()


SettingsDependency = Annotated[Settings, Depends(SETTINGS)]
DocumentsDependency = Annotated[DocumentStore, Depends(get_documents)]
LedgerDependency = Annotated[BalanceLedger, Depends(get_ledger)]
GatewayDependency = Annotated[TelegramGateway, Depends(get_gateway)]
AudioCacheDependency = Annotated[AudioCache, Depends(get_audio_cache)]
LoggerDependency = Annotated[FilteringBoundLogger, Depends(logger)]
