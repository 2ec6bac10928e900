"""
Mock collaborators, used for development and testing.
"""

from pydantic import BaseModel
from structlog.typing import FilteringBoundLogger

from intelgroups.core.premium import Balance, Beneficiary, PurchaseSettlement

from .ledger import BalanceLedger, LedgerUnavailable, PurchaseRejected
from .notify import TelegramGateway


class MockLedger(BalanceLedger):
    """
    An in-memory ledger. Any user can be given a balance and a passcode;
    purchases are checked against both.
    """

    premium_price: int
    referral_share: int
    usd_rate: float
    balances: dict[str, float]
    passcodes: dict[str, str]
    settlements: list[dict]
    unavailable: bool

    def __init__(
        self, premium_price: int = 5000, referral_share: int = 2500, usd_rate=1600
    ):
        self.premium_price = premium_price
        self.referral_share = referral_share
        self.usd_rate = usd_rate
        self.balances = {}
        self.passcodes = {}
        self.settlements = []
        self.unavailable = False

    def check_available(self):
        if self.unavailable:
            raise LedgerUnavailable("Mock ledger unavailable")

    async def get_balance(self, user_id: str, log: FilteringBoundLogger) -> Balance:
        self.check_available()
        ngn = self.balances.get(user_id, 0)
        return Balance(
            ngn=ngn, usd=round(ngn / self.usd_rate, 2), usd_rate=self.usd_rate
        )

    async def issue_passcode(self, user_id: str, log: FilteringBoundLogger) -> None:
        self.check_available()
        self.passcodes[user_id] = f"{len(self.passcodes) + 1:06d}"
        await log.ainfo("ledger.mock.passcode_issued", user_id=user_id)

    async def settle_purchase(
        self,
        buyer_id: str,
        buyer_name: str | None,
        buyer_username: str | None,
        passcode: str | None,
        beneficiary: Beneficiary | None,
        log: FilteringBoundLogger,
    ) -> PurchaseSettlement:
        self.check_available()

        expected = self.passcodes.get(buyer_id)

        if expected is None or passcode != expected:
            raise PurchaseRejected("Invalid passcode")

        balance = self.balances.get(buyer_id, 0)

        if balance < self.premium_price:
            raise PurchaseRejected("Insufficient balance")

        del self.passcodes[buyer_id]
        self.balances[buyer_id] = balance - self.premium_price

        earned = 0

        if beneficiary is not None:
            earned = self.referral_share
            self.balances[beneficiary.owner_id] = (
                self.balances.get(beneficiary.owner_id, 0) + earned
            )

        self.settlements.append(
            {
                "buyer_id": buyer_id,
                "beneficiary": beneficiary.owner_id if beneficiary else None,
                "earned": earned,
            }
        )

        return PurchaseSettlement(
            message="You are now Premium!",
            new_buyer_balance=self.balances[buyer_id],
            buyer_usd=round(self.balances[buyer_id] / self.usd_rate, 2),
            premium_cost_ngn=self.premium_price,
            premium_cost_usd=round(self.premium_price / self.usd_rate, 2),
            owner_earned_ngn=earned,
            owner_earned_usd=round(earned / self.usd_rate, 2),
        )


class SentNotification(BaseModel):
    chat_id: str
    text: str
    photo: str | None = None


class RecordingGateway(TelegramGateway):
    """
    A gateway that records what it would have sent instead of sending it.
    Chats listed in `failing` behave as if delivery failed.
    """

    sent: list[SentNotification]
    failing: set[str]

    def __init__(self, failing: set[str] | None = None):
        super().__init__(bot_token="mock")
        self.sent = []
        self.failing = failing or set()

    async def send_text(
        self, chat_id: str | None, text: str, log: FilteringBoundLogger
    ) -> bool:
        if not chat_id:
            return False

        if chat_id in self.failing:
            await log.awarning("notify.failed", chat_id=chat_id)
            return False

        self.sent.append(SentNotification(chat_id=chat_id, text=text))
        return True

    async def send_photo(
        self, chat_id: str | None, photo: str, caption: str, log: FilteringBoundLogger
    ) -> bool:
        if not chat_id:
            return False

        if chat_id in self.failing:
            await log.awarning("notify.failed", chat_id=chat_id)
            return False

        self.sent.append(SentNotification(chat_id=chat_id, text=caption, photo=photo))
        return True

    def sent_to(self, chat_id: str) -> list[SentNotification]:
        return [x for x in self.sent if x.chat_id == chat_id]

