"""
Premium purchase and balance models.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .group import timestamp


class LedgerModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )


class Balance(LedgerModel):
    ngn: float = 0
    usd: float = 0
    usd_rate: float = 1600


class PurchaseSettlement(LedgerModel):
    """
    The ledger's report of a successful purchase: the buyer has been debited
    and, if there was a beneficiary, they have been credited.
    """

    message: str | None = None
    new_buyer_balance: float | None = None
    buyer_usd: float | None = None
    premium_cost_ngn: float | None = None
    premium_cost_usd: float | None = None
    owner_earned_ngn: float | None = None
    owner_earned_usd: float | None = None


class Beneficiary(BaseModel):
    owner_id: str
    owner_name: str
    group_id: str
    group_name: str


class PendingBookkeeping(LedgerModel):
    """
    An outbox record: the ledger settled a purchase but some of the local
    write-backs did not land.
    """

    id: str
    buyer_id: str
    group_id: str | None = None
    earnings: int = 0
    add_to_roster: bool = False
    reason: str | None = None
    created_at: int = Field(default_factory=timestamp)

    @property
    def settled(self) -> bool:
        return self.earnings == 0 and not self.add_to_roster
