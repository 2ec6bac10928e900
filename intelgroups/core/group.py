"""
Core group data models. These are the shapes persisted in the group document,
so the serialized keys are camelCase to match the pages that load it.
"""

import time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MessageType = Literal["text", "voice", "system"]


def timestamp() -> int:
    """
    Milliseconds since the epoch, the unit used throughout the document.
    """
    return int(time.time() * 1000)


class DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="allow",
    )


class MemberData(DocumentModel):
    name: str | None = None
    username: str | None = None
    joined_at: int = Field(default_factory=timestamp)


class MessageData(DocumentModel):
    id: str
    type: MessageType
    sender_id: str | None = None
    sender_name: str | None = None
    timestamp: int = Field(default_factory=timestamp)

    text: str | None = None
    duration: str | None = None
    audio_url: str | None = None


class GroupData(DocumentModel):
    name: str
    description: str = ""
    owner_id: str
    owner_name: str | None = None
    avatar: str | dict[str, Any] | None = None
    is_private: bool = False
    is_premium_only: bool = False
    created_at: int = Field(default_factory=timestamp)
    last_message: str | None = None
    last_message_at: int | None = None
    total_earnings: int = 0
    # Purchases already counted in total_earnings, so a replayed credit is
    # applied once.
    credited_purchases: list[str] = Field(default_factory=list)
    members: dict[str, MemberData] = Field(default_factory=dict)
    messages: list[MessageData] = Field(default_factory=list)

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members

    def append(self, message: MessageData, retention: int):
        """
        Append a message, evicting the oldest ones beyond `retention`.
        """
        self.messages.append(message)

        if len(self.messages) > retention:
            self.messages = self.messages[-retention:]

    def preview(self, text: str, at: int):
        self.last_message = text
        self.last_message_at = at

    def find_message(self, message_id: str) -> int | None:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index

        return None

    def summary(self) -> "GroupSummary":
        """
        The group without its message log, for listings.
        """
        return GroupSummary.model_validate(
            self.model_dump(by_alias=True, exclude={"messages", "credited_purchases"})
        )


class GroupSummary(DocumentModel):
    name: str
    description: str = ""
    owner_id: str
    owner_name: str | None = None
    avatar: str | dict[str, Any] | None = None
    is_private: bool = False
    is_premium_only: bool = False
    created_at: int
    last_message: str | None = None
    last_message_at: int | None = None
    total_earnings: int = 0
    members: dict[str, MemberData] = Field(default_factory=dict)


GroupCollection = dict[str, GroupData]
PremiumRoster = list[str]


class GroupPatch(BaseModel):
    """
    A partial update to a group. Only the fields that were explicitly set are
    applied, so `description=""` or `avatar=None` are meaningful.
    """

    name: str | None = None
    description: str | None = None
    avatar: Any = None
    is_private: bool | None = None
    is_premium_only: bool | None = None
