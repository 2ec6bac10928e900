"""
Pydantic models for request/responses to APIs. Keys are camelCase on the
wire, as the pages expect.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .premium import PendingBookkeeping


class ClientModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )


class UserRequest(ClientModel):
    telegram_id: str


class SuccessResponse(ClientModel):
    success: bool = True


class CreateGroupRequest(UserRequest):
    owner_name: str | None = None
    name: str
    description: str | None = None
    is_private: bool = False
    is_premium_only: bool = False
    avatar: Any = None


class CreateGroupResponse(SuccessResponse):
    group_id: str


class JoinGroupRequest(UserRequest):
    name: str | None = None
    username: str | None = None


class EditGroupRequest(UserRequest):
    name: str | None = None
    description: str | None = None
    avatar: Any = None
    is_private: bool | None = None
    is_premium_only: bool | None = None


class PostMessageRequest(UserRequest):
    sender_name: str | None = None
    type: Literal["text", "voice"] = "text"
    text: str | None = None
    audio_data: str | None = None
    duration: str | None = None


class PostMessageResponse(SuccessResponse):
    msg_id: str


class BalanceRequest(ClientModel):
    telegram_id: str | None = None


class PasscodeResponse(SuccessResponse):
    message: str


class BuyPremiumRequest(UserRequest):
    name: str | None = None
    username: str | None = None
    passcode: str | None = None
    group_id: str | None = None


class BuyPremiumResponse(SuccessResponse):
    message: str
    new_balance: float | None = None
    buyer_usd: float | None = None
    premium_cost_ngn: float | None = None
    premium_cost_usd: float | None = None
    owner_earned_ngn: float | None = None
    owner_earned_usd: float | None = None


class DepositRequest(UserRequest):
    name: str | None = None
    username: str | None = None
    method: str | None = None
    amount: float = 0
    whatsapp: str | None = None
    image: str


class PremiumCheckResponse(ClientModel):
    is_premium: bool
    users: list[str]


class RosterResponse(SuccessResponse):
    users: list[str]


class ReconcileResponse(SuccessResponse):
    pending: list[PendingBookkeeping]
