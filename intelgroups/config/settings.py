"""
Main settings object.
"""

from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from intelgroups.service.audio import AudioCache
from intelgroups.service.ledger import BalanceLedger, HTTPBalanceLedger
from intelgroups.service.mock import MockLedger
from intelgroups.service.notify import TelegramGateway
from intelgroups.store.files import VersionedFileStore
from intelgroups.store.github import GitHubFileStore
from intelgroups.store.mock import MockFileStore


class Settings(BaseSettings):
    # Document storage. The `memory` store is for development and testing;
    # everything is lost on restart.
    store_type: Literal["github", "memory"] = "memory"
    github_token: str | None = None
    github_repo: str | None = None
    github_branch: str | None = None
    github_api_url: str = "https://api.github.com"

    groups_file: str = "groups.js"
    premium_file: str = "premium.js"
    outbox_file: str = "outbox.json"

    write_attempts: int = 3

    # Balance ledger
    ledger_type: Literal["http", "mock"] = "mock"
    ledger_url: str | None = None
    ledger_secret: str | None = None  # Falls back to admin_password

    # Telegram
    bot_token: str | None = None
    telegram_api_url: str = "https://api.telegram.org"
    group_view_link: str = "https://t.me/intelligentverificationlinkbot"

    admin_id: str | None = None
    admin_password: str | None = None

    # Groups and messages
    message_retention: int = 500
    message_page_size: int = 200

    # Premium
    premium_price: int = 5000
    referral_share: int = 2500

    audio_cache_size: int = 256
    audio_cache_ttl: timedelta = timedelta(hours=1)

    static_directory: Path | None = None

    hostname: str = "0.0.0.0"
    port: int = 3000

    model_config = SettingsConfigDict(env_prefix="INTELGROUPS_", env_file=".env")

    def file_store(self) -> VersionedFileStore:
        match self.store_type:
            case "github":
                return GitHubFileStore(
                    repository=self.github_repo,
                    token=self.github_token,
                    branch=self.github_branch,
                    api_url=self.github_api_url,
                )
            case "memory":
                return MockFileStore()
            case _:
                raise ValueError

    def ledger(self) -> BalanceLedger:
        match self.ledger_type:
            case "http":
                return HTTPBalanceLedger(
                    base_url=self.ledger_url,
                    secret=self.ledger_secret or self.admin_password,
                )
            case "mock":
                return MockLedger(
                    premium_price=self.premium_price,
                    referral_share=self.referral_share,
                )
            case _:
                raise ValueError

    def gateway(self) -> TelegramGateway:
        return TelegramGateway(bot_token=self.bot_token, api_url=self.telegram_api_url)

    def audio_cache(self) -> AudioCache:
        return AudioCache(
            maxsize=self.audio_cache_size, ttl=self.audio_cache_ttl.total_seconds()
        )
