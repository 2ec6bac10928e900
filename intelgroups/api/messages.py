"""
Group messages and voice notes.
"""

from fastapi import APIRouter, HTTPException, Query, Response, status

from intelgroups.core.group import MessageData
from intelgroups.core.models import (
    PostMessageRequest,
    PostMessageResponse,
    SuccessResponse,
    UserRequest,
)
from intelgroups.service import groups as groups_service
from intelgroups.service import messages as messages_service
from intelgroups.service.audio import InvalidAudio

from .dependencies import (
    AudioCacheDependency,
    DocumentsDependency,
    GatewayDependency,
    LoggerDependency,
    SettingsDependency,
)
from .groups import not_found

message_app = APIRouter(tags=["Messages"])


@message_app.get(
    "/groups/{group_id}/messages",
    summary="List recent messages",
    description=(
        "The most recent messages of a group, oldest first. Voice notes carry an "
        "`audioUrl` to fetch the recording from."
    ),
    responses={404: {"description": "Group not found."}},
    response_model_exclude_none=True,
)
async def list_messages(
    group_id: str,
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
    limit: int | None = Query(None, ge=1, le=500),
) -> list[MessageData]:
    try:
        return await messages_service.list_messages(
            group_id=group_id,
            limit=limit,
            documents=documents,
            settings=settings,
            log=log,
        )
    except groups_service.GroupNotFound:
        raise not_found(group_id)


@message_app.post(
    "/groups/{group_id}/messages",
    summary="Post a message",
    description=(
        "Post a text message or a voice note. Voice notes are sent as base64 "
        "in `audioData` and kept in memory for a limited time only."
    ),
    responses={
        400: {"description": "Empty message or unreadable audio."},
        404: {"description": "Group not found."},
    },
)
async def post_message(
    group_id: str,
    content: PostMessageRequest,
    documents: DocumentsDependency,
    audio: AudioCacheDependency,
    gateway: GatewayDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> PostMessageResponse:
    try:
        message = await messages_service.post_message(
            group_id=group_id,
            sender_id=content.telegram_id,
            sender_name=content.sender_name,
            message_type=content.type,
            text=content.text,
            audio_data=content.audio_data,
            duration=content.duration,
            documents=documents,
            audio=audio,
            gateway=gateway,
            settings=settings,
            log=log,
        )
    except (messages_service.EmptyMessage, InvalidAudio) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except groups_service.GroupNotFound:
        raise not_found(group_id)

    return PostMessageResponse(msg_id=message.id)


@message_app.delete(
    "/groups/{group_id}/messages/{message_id}",
    summary="Delete a message",
    description="Only the sender of a message or the owner of the group may delete it.",
    responses={
        403: {"description": "Not allowed."},
        404: {"description": "Group or message not found."},
    },
)
async def delete_message(
    group_id: str,
    message_id: str,
    content: UserRequest,
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> SuccessResponse:
    try:
        await messages_service.delete_message(
            group_id=group_id,
            message_id=message_id,
            requester_id=content.telegram_id,
            documents=documents,
            settings=settings,
            log=log,
        )
    except groups_service.GroupNotFound:
        raise not_found(group_id)
    except messages_service.MessageNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except groups_service.NotAuthorized as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    return SuccessResponse()


@message_app.get(
    "/audio/{message_id}",
    summary="Fetch a voice note",
    description="The recording behind a voice note, while it is still cached.",
    responses={
        200: {"description": "The raw recording."},
        404: {"description": "Audio not found (unknown or expired)."},
    },
)
async def get_audio(
    message_id: str, audio: AudioCacheDependency, log: LoggerDependency
) -> Response:
    clip = audio.get(message_id)

    if clip is None:
        await log.ainfo("api.audio.not_found", message_id=message_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Audio not found"
        )

    return Response(content=clip.data, media_type=clip.media_type)
