"""
Client for the balance ledger. The ledger owns balances and passcodes; this
service only asks it to settle purchases and reports what it says.
"""

import abc
from json import JSONDecodeError
from typing import Any

import httpx
from pydantic import ValidationError
from structlog.typing import FilteringBoundLogger

from intelgroups.core.premium import Balance, Beneficiary, PurchaseSettlement


class LedgerUnavailable(Exception):
    pass


class PurchaseRejected(Exception):
    pass


class PasscodeRequestFailed(Exception):
    pass


class BalanceLedger(abc.ABC):
    """
    The base class for balance ledgers. Downstream must implement:

    - get_balance: the current balance of a user.
    - issue_passcode: have a one-time passcode delivered to the user.
    - settle_purchase: validate the passcode, debit the buyer the premium
                       price and credit the beneficiary (if any) their share,
                       as one operation.
    """

    @abc.abstractmethod
    async def get_balance(self, user_id: str, log: FilteringBoundLogger) -> Balance:
        raise NotImplementedError

    @abc.abstractmethod
    async def issue_passcode(self, user_id: str, log: FilteringBoundLogger) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def settle_purchase(
        self,
        buyer_id: str,
        buyer_name: str | None,
        buyer_username: str | None,
        passcode: str | None,
        beneficiary: Beneficiary | None,
        log: FilteringBoundLogger,
    ) -> PurchaseSettlement:
        """
        Raises
        ------
        PurchaseRejected
            If the ledger refused the purchase (bad passcode, insufficient
            balance, ...). Nothing has been debited.
        LedgerUnavailable
            If the ledger could not be reached.
        """
        raise NotImplementedError


class HTTPBalanceLedger(BalanceLedger):
    """
    The remote balance server, spoken to over JSON.
    """

    base_url: str | None
    secret: str | None
    transport: httpx.AsyncBaseTransport | None

    def __init__(
        self,
        base_url: str | None,
        secret: str | None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.secret = secret
        self.transport = transport

    async def post(
        self, endpoint: str, body: dict[str, Any]
    ) -> tuple[int, dict[str, Any]]:
        if not self.base_url:
            raise LedgerUnavailable("No ledger URL configured")

        url = f"{self.base_url}{endpoint}"

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(url, json=body)
        except httpx.HTTPError as e:
            raise LedgerUnavailable(f"Error contacting {url}: {e}")

        try:
            content = response.json()
        except JSONDecodeError:
            raise LedgerUnavailable(
                f"Unreadable response from {url}: {response.status_code}"
            )

        if not isinstance(content, dict):
            raise LedgerUnavailable(f"Unexpected response from {url}")

        return response.status_code, content

    async def get_balance(self, user_id: str, log: FilteringBoundLogger) -> Balance:
        status_code, content = await self.post("/get-balance", {"telegramId": user_id})

        if status_code != 200:
            await log.awarning("ledger.balance.failed", status_code=status_code)
            raise LedgerUnavailable(content.get("error") or "Failed to load balance")

        balance = Balance(
            ngn=content.get("ngn") or 0, usd_rate=content.get("usdRate") or 1600
        )

        balance.usd = content.get("usd") or round(balance.ngn / balance.usd_rate, 2)

        return balance

    async def issue_passcode(self, user_id: str, log: FilteringBoundLogger) -> None:
        status_code, content = await self.post(
            "/generate-passcode", {"telegramId": user_id}
        )

        if status_code != 200:
            await log.awarning("ledger.passcode.failed", status_code=status_code)
            raise PasscodeRequestFailed(
                content.get("error") or "Failed to generate code"
            )

        await log.ainfo("ledger.passcode.issued")

    async def settle_purchase(
        self,
        buyer_id: str,
        buyer_name: str | None,
        buyer_username: str | None,
        passcode: str | None,
        beneficiary: Beneficiary | None,
        log: FilteringBoundLogger,
    ) -> PurchaseSettlement:
        status_code, content = await self.post(
            "/api/premium-purchase",
            {
                "telegramId": buyer_id,
                "buyerName": buyer_name,
                "buyerUsername": buyer_username or "",
                "groupOwnerId": beneficiary.owner_id if beneficiary else None,
                "groupOwnerName": beneficiary.owner_name if beneficiary else None,
                "groupName": beneficiary.group_name if beneficiary else None,
                "passcode": passcode,
                "secretKey": self.secret,
            },
        )

        if status_code >= 500 and not content.get("error"):
            await log.aerror("ledger.purchase.unavailable", status_code=status_code)
            raise LedgerUnavailable(f"Ledger failed with {status_code}")

        if status_code != 200:
            reason = content.get("error") or "Premium purchase failed"
            await log.ainfo(
                "ledger.purchase.rejected", status_code=status_code, reason=reason
            )
            raise PurchaseRejected(reason)

        try:
            return PurchaseSettlement.model_validate(content)
        except ValidationError as e:
            raise LedgerUnavailable(f"Unexpected purchase response: {e}")
