"""
Service layer for group messages: posting, listing and deleting, plus the
notification fan-out to the other members of a group.
"""

import html
from typing import Literal

from structlog.typing import FilteringBoundLogger

from intelgroups.config.settings import Settings
from intelgroups.core import random
from intelgroups.core.codec import GROUPS_CODEC
from intelgroups.core.group import GroupCollection, MessageData, timestamp
from intelgroups.core.redaction import relay
from intelgroups.store.documents import DocumentStore

from .audio import AudioCache, decode_audio
from .groups import GroupNotFound, NotAuthorized, get_group, read_by_id
from .notify import TelegramGateway

TEXT_LENGTH = 4000
PREVIEW_LENGTH = 60
NOTIFICATION_LENGTH = 200


class MessageNotFound(Exception):
    pass


class EmptyMessage(Exception):
    pass


def audio_url(message_id: str) -> str:
    return f"/api/audio/{message_id}"


async def post_message(
    group_id: str,
    sender_id: str,
    sender_name: str | None,
    message_type: Literal["text", "voice"],
    text: str | None,
    audio_data: str | None,
    duration: str | None,
    documents: DocumentStore,
    audio: AudioCache,
    gateway: TelegramGateway,
    settings: Settings,
    log: FilteringBoundLogger,
) -> MessageData:
    """
    Post a text message or a voice note to a group.

    Voice payloads are decoded and placed in the audio cache under the new
    message's ID; the group document only stores a URL pointing at it.

    Once the message is stored, every other member is notified. Notification
    failures are ignored.

    Raises
    ------
    EmptyMessage
        If a text message is blank.
    InvalidAudio
        If a voice note has no usable payload.
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id, sender_id=sender_id, message_type=message_type)
    sender_label = sender_name or sender_id

    if message_type == "voice":
        clip = decode_audio(audio_data or "")
    elif not (text or "").strip():
        raise EmptyMessage("Empty message")
    else:
        clip = None

    message_id = random.message_id()

    def append(groups: GroupCollection) -> tuple[MessageData, list[str], str]:
        group = get_group(groups, group_id)
        now = timestamp()

        if message_type == "voice":
            message = MessageData(
                id=message_id,
                type="voice",
                sender_id=sender_id,
                sender_name=sender_name,
                duration=duration or "0:00",
                audio_url=audio_url(message_id),
                timestamp=now,
            )
            preview = f"🎤 {sender_label}: Voice note"
        else:
            message = MessageData(
                id=message_id,
                type="text",
                sender_id=sender_id,
                sender_name=sender_name,
                text=text[:TEXT_LENGTH],
                timestamp=now,
            )
            preview = f"{sender_label}: {text[:PREVIEW_LENGTH]}"

        group.append(message, retention=settings.message_retention)
        group.preview(preview, at=now)

        recipients = [member for member in group.members if member != sender_id]

        return message, recipients, group.name

    message, recipients, group_name = await documents.mutate(
        name=settings.groups_file,
        codec=GROUPS_CODEC,
        mutation=append,
        note=f"Message in {group_id}",
        log=log,
    )

    if clip is not None:
        audio.put(message_id, clip)

    log = log.bind(message_id=message_id)
    await log.ainfo("message.posted", number_of_recipients=len(recipients))

    if recipients:
        if message_type == "voice":
            body = "🎤 Sent a voice note"
        else:
            body = relay(text[:NOTIFICATION_LENGTH])

        notification = (
            f"💬 <b>{html.escape(sender_label)}</b> in "
            f"<b>{html.escape(group_name)}</b>:\n{body}\n\n"
            f'<a href="{settings.group_view_link}">👉 View in group</a>'
        )

        delivered = await gateway.broadcast(
            chat_ids=recipients, text=notification, log=log
        )
        await log.adebug("message.notified", delivered=delivered)

    return message


async def list_messages(
    group_id: str,
    limit: int | None,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> list[MessageData]:
    """
    The most recent `limit` messages of a group, oldest first. Audio payloads
    are never included; voice notes carry a URL to fetch them from.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    limit = limit or settings.message_page_size
    group = await read_by_id(
        group_id=group_id, documents=documents, settings=settings, log=log
    )

    messages = group.messages[-limit:] if limit > 0 else []

    # Older documents may still carry inline audio.
    return [
        MessageData.model_validate(
            {
                key: value
                for key, value in message.model_dump(by_alias=True).items()
                if key != "audioData"
            }
        )
        for message in messages
    ]


async def delete_message(
    group_id: str,
    message_id: str,
    requester_id: str,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> None:
    """
    Delete a message. Only its sender or the owner of the group may do so;
    ownership is always taken from the stored group.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    MessageNotFound
        If the message does not exist.
    NotAuthorized
        If the requester is neither the sender nor the group owner.
    """
    log = log.bind(
        group_id=group_id, message_id=message_id, requester_id=requester_id
    )

    def remove(groups: GroupCollection):
        group = get_group(groups, group_id)
        index = group.find_message(message_id)

        if index is None:
            raise MessageNotFound(f"Message {message_id} not found")

        message = group.messages[index]

        if requester_id not in {message.sender_id, group.owner_id}:
            raise NotAuthorized("Not allowed")

        del group.messages[index]

    try:
        await documents.mutate(
            name=settings.groups_file,
            codec=GROUPS_CODEC,
            mutation=remove,
            note=f"Delete msg {message_id}",
            log=log,
        )
    except (GroupNotFound, MessageNotFound):
        await log.ainfo("message.not_found")
        raise
    except NotAuthorized:
        await log.awarning("message.delete.access_denied")
        raise

    await log.ainfo("message.deleted")
