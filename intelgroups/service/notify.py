"""
Outbound notifications through the Telegram bot API. Delivery is best
effort: failures are logged and never reach the caller.
"""

import asyncio
from typing import Any

import httpx
from structlog.typing import FilteringBoundLogger


class TelegramGateway:
    bot_token: str | None
    api_url: str
    transport: httpx.AsyncBaseTransport | None

    def __init__(
        self,
        bot_token: str | None,
        api_url: str = "https://api.telegram.org",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")
        self.transport = transport

    async def call(
        self, method: str, body: dict[str, Any], log: FilteringBoundLogger
    ) -> bool:
        log = log.bind(telegram_method=method, chat_id=body.get("chat_id"))

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    f"{self.api_url}/bot{self.bot_token}/{method}", json=body
                )
        except httpx.HTTPError as e:
            await log.awarning("notify.failed", error=str(e))
            return False

        if response.status_code != 200:
            await log.awarning("notify.failed", status_code=response.status_code)
            return False

        await log.adebug("notify.sent")
        return True

    async def send_text(
        self, chat_id: str | None, text: str, log: FilteringBoundLogger
    ) -> bool:
        """
        Send an HTML-formatted text message. Returns whether it was delivered.
        """
        if not self.bot_token or not chat_id:
            return False

        return await self.call(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
            log=log,
        )

    async def send_photo(
        self, chat_id: str | None, photo: str, caption: str, log: FilteringBoundLogger
    ) -> bool:
        """
        Send a photo (URL, file id or data URL) with an HTML caption.
        """
        if not self.bot_token or not chat_id:
            return False

        return await self.call(
            "sendPhoto",
            {
                "chat_id": chat_id,
                "photo": photo,
                "caption": caption,
                "parse_mode": "HTML",
            },
            log=log,
        )

    async def broadcast(
        self, chat_ids: list[str], text: str, log: FilteringBoundLogger
    ) -> int:
        """
        Send the same text to several chats concurrently. Returns the number
        of successful deliveries.
        """
        results = await asyncio.gather(
            *(self.send_text(chat_id=c, text=text, log=log) for c in chat_ids)
        )
        return sum(results)
