"""
Tests posting, listing and deleting group messages.
"""

import base64

import pytest

from intelgroups.core.codec import GROUPS_CODEC
from intelgroups.core.group import GroupData, MemberData, MessageData
from intelgroups.service import groups as groups_service
from intelgroups.service import messages as messages_service
from intelgroups.service.audio import InvalidAudio
from intelgroups.service.mock import RecordingGateway
from intelgroups.store.documents import DocumentStore
from intelgroups.store.mock import MockFileStore

GROUP_ID = "A1B2C3D4E5"
OWNER = "100"
USER = "200"
OTHER = "300"

CLIP = b"\x1aE\xdf\xa3 not really webm"


def seeded_store(server_settings, messages=None):
    group = GroupData(
        name="Traders",
        owner_id=OWNER,
        owner_name="Olive",
        members={
            OWNER: MemberData(name="Olive"),
            USER: MemberData(name="Uma"),
            OTHER: MemberData(name="Otto"),
        },
        messages=messages or [],
    )

    return MockFileStore(
        blobs={server_settings.groups_file: GROUPS_CODEC.encode({GROUP_ID: group})}
    )


@pytest.fixture
def file_store(server_settings):
    return seeded_store(server_settings)


async def post(
    documents,
    audio_cache,
    gateway,
    server_settings,
    logger,
    sender_id=USER,
    text="hello",
    message_type="text",
    audio_data=None,
    duration=None,
    group_id=GROUP_ID,
):
    return await messages_service.post_message(
        group_id=group_id,
        sender_id=sender_id,
        sender_name="Uma" if sender_id == USER else None,
        message_type=message_type,
        text=text,
        audio_data=audio_data,
        duration=duration,
        documents=documents,
        audio=audio_cache,
        gateway=gateway,
        settings=server_settings,
        log=logger,
    )


async def read_group(documents, server_settings, logger):
    return await groups_service.read_by_id(
        group_id=GROUP_ID, documents=documents, settings=server_settings, log=logger
    )


@pytest.mark.asyncio
async def test_post_text(documents, audio_cache, gateway, server_settings, logger):
    message = await post(documents, audio_cache, gateway, server_settings, logger)

    assert message.type == "text"
    assert message.text == "hello"
    assert len(message.id) == 16

    group = await read_group(documents, server_settings, logger)

    assert group.messages == [message]
    assert group.last_message == "Uma: hello"
    assert group.last_message_at == message.timestamp


@pytest.mark.asyncio
async def test_post_truncates(documents, audio_cache, gateway, server_settings, logger):
    text = "x" * 5000
    message = await post(
        documents, audio_cache, gateway, server_settings, logger, text=text
    )

    assert len(message.text) == 4000

    group = await read_group(documents, server_settings, logger)
    assert group.last_message == "Uma: " + "x" * 60


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [None, "", "   \n"])
async def test_post_empty(
    documents, audio_cache, gateway, server_settings, logger, file_store, text
):
    with pytest.raises(messages_service.EmptyMessage):
        await post(documents, audio_cache, gateway, server_settings, logger, text=text)

    assert file_store.writes == []
    assert gateway.sent == []


@pytest.mark.asyncio
async def test_post_missing_group(
    documents, audio_cache, gateway, server_settings, logger
):
    with pytest.raises(groups_service.GroupNotFound):
        await post(
            documents, audio_cache, gateway, server_settings, logger, group_id="NOPE"
        )


@pytest.mark.asyncio
async def test_post_voice(documents, audio_cache, gateway, server_settings, logger):
    payload = "data:audio/ogg;base64," + base64.b64encode(CLIP).decode()

    message = await post(
        documents,
        audio_cache,
        gateway,
        server_settings,
        logger,
        text=None,
        message_type="voice",
        audio_data=payload,
        duration="0:07",
    )

    assert message.type == "voice"
    assert message.duration == "0:07"
    assert message.audio_url == f"/api/audio/{message.id}"

    clip = audio_cache.get(message.id)
    assert clip.data == CLIP
    assert clip.media_type == "audio/ogg"

    group = await read_group(documents, server_settings, logger)
    assert group.last_message == "🎤 Uma: Voice note"

    # The payload itself never reaches the document.
    blob = documents.files.blobs[server_settings.groups_file]
    assert base64.b64encode(CLIP) not in blob.content
    assert b"audioData" not in blob.content


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [None, "", "data:audio/webm;base64,", "%%%"])
async def test_post_voice_invalid(
    documents, audio_cache, gateway, server_settings, logger, file_store, payload
):
    with pytest.raises(InvalidAudio):
        await post(
            documents,
            audio_cache,
            gateway,
            server_settings,
            logger,
            text=None,
            message_type="voice",
            audio_data=payload,
        )

    assert file_store.writes == []
    assert len(audio_cache) == 0


@pytest.mark.asyncio
async def test_retention(audio_cache, gateway, server_settings, logger):
    retention = server_settings.message_retention
    history = [
        MessageData(id=f"{i:016x}", type="text", sender_id=OWNER, text=str(i))
        for i in range(retention)
    ]
    documents = DocumentStore(files=seeded_store(server_settings, messages=history))

    message = await post(
        documents, audio_cache, gateway, server_settings, logger, text="newest"
    )

    group = await read_group(documents, server_settings, logger)

    assert len(group.messages) == retention
    assert group.messages[0].text == "1"
    assert group.messages[-2].text == str(retention - 1)
    assert group.messages[-1] == message


@pytest.mark.asyncio
async def test_list_messages(documents, audio_cache, gateway, server_settings, logger):
    for i in range(5):
        await post(
            documents, audio_cache, gateway, server_settings, logger, text=str(i)
        )

    async def listing(limit):
        messages = await messages_service.list_messages(
            group_id=GROUP_ID,
            limit=limit,
            documents=documents,
            settings=server_settings,
            log=logger,
        )
        return [m.text for m in messages]

    assert await listing(None) == ["0", "1", "2", "3", "4"]
    assert await listing(2) == ["3", "4"]


@pytest.mark.asyncio
async def test_list_strips_inline_audio(server_settings, logger):
    legacy = MessageData.model_validate(
        {
            "id": "0123456789abcdef",
            "type": "voice",
            "senderId": USER,
            "duration": "0:03",
            "audioData": "AAAA",
        }
    )
    documents = DocumentStore(files=seeded_store(server_settings, messages=[legacy]))

    [message] = await messages_service.list_messages(
        group_id=GROUP_ID,
        limit=None,
        documents=documents,
        settings=server_settings,
        log=logger,
    )

    assert message.duration == "0:03"
    assert "audioData" not in message.model_dump(by_alias=True)


@pytest.mark.asyncio
async def test_notifications(documents, audio_cache, server_settings, logger):
    gateway = RecordingGateway()

    await post(
        documents,
        audio_cache,
        gateway,
        server_settings,
        logger,
        text="call +234 803 123 4567 or see https://spam.example <b>now</b>",
    )

    assert {x.chat_id for x in gateway.sent} == {OWNER, OTHER}

    text = gateway.sent[0].text
    assert "<b>Uma</b> in <b>Traders</b>" in text
    assert "[phone]" in text
    assert "[link]" in text
    assert "&lt;b&gt;now&lt;/b&gt;" in text
    assert "803" not in text
    assert "spam.example" not in text


@pytest.mark.asyncio
async def test_notification_failures_ignored(
    documents, audio_cache, server_settings, logger
):
    gateway = RecordingGateway(failing={OWNER})

    message = await post(documents, audio_cache, gateway, server_settings, logger)

    assert [x.chat_id for x in gateway.sent] == [OTHER]

    group = await read_group(documents, server_settings, logger)
    assert group.messages == [message]


@pytest.mark.asyncio
@pytest.mark.parametrize("requester", [USER, OWNER])
async def test_delete_message(
    documents, audio_cache, gateway, server_settings, logger, requester
):
    first = await post(documents, audio_cache, gateway, server_settings, logger)
    second = await post(documents, audio_cache, gateway, server_settings, logger)

    await messages_service.delete_message(
        group_id=GROUP_ID,
        message_id=first.id,
        requester_id=requester,
        documents=documents,
        settings=server_settings,
        log=logger,
    )

    group = await read_group(documents, server_settings, logger)
    assert group.messages == [second]


@pytest.mark.asyncio
async def test_delete_message_not_allowed(
    documents, audio_cache, gateway, server_settings, logger, file_store
):
    message = await post(documents, audio_cache, gateway, server_settings, logger)
    before = file_store.blobs[server_settings.groups_file]

    with pytest.raises(groups_service.NotAuthorized):
        await messages_service.delete_message(
            group_id=GROUP_ID,
            message_id=message.id,
            requester_id=OTHER,
            documents=documents,
            settings=server_settings,
            log=logger,
        )

    assert file_store.blobs[server_settings.groups_file] == before


@pytest.mark.asyncio
async def test_delete_message_missing(documents, server_settings, logger):
    with pytest.raises(messages_service.MessageNotFound):
        await messages_service.delete_message(
            group_id=GROUP_ID,
            message_id="0000000000000000",
            requester_id=OWNER,
            documents=documents,
            settings=server_settings,
            log=logger,
        )
