"""
Group management.
"""

from fastapi import APIRouter, HTTPException, status

from intelgroups.core.group import GroupPatch, GroupSummary
from intelgroups.core.models import (
    CreateGroupRequest,
    CreateGroupResponse,
    EditGroupRequest,
    JoinGroupRequest,
    SuccessResponse,
    UserRequest,
)
from intelgroups.service import groups as groups_service

from .dependencies import (
    DocumentsDependency,
    GatewayDependency,
    LoggerDependency,
    SettingsDependency,
)

group_app = APIRouter(tags=["Groups"])


def not_found(group_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail=f"Group {group_id} not found"
    )


@group_app.get(
    "",
    summary="List all groups",
    description="All groups, without their messages.",
    response_model_exclude_none=True,
)
async def list_groups(
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> dict[str, GroupSummary]:
    groups = await groups_service.get_group_list(
        documents=documents, settings=settings, log=log
    )
    await log.adebug("api.groups.list", number_of_groups=len(groups))
    return groups


@group_app.get(
    "/{group_id}",
    summary="Get group by ID",
    description="A single group, without its messages.",
    responses={
        200: {"description": "Group details."},
        404: {"description": "Group not found."},
    },
    response_model_exclude_none=True,
)
async def get_group(
    group_id: str,
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> GroupSummary:
    try:
        group = await groups_service.read_by_id(
            group_id=group_id, documents=documents, settings=settings, log=log
        )
    except groups_service.GroupNotFound:
        raise not_found(group_id)

    return group.summary()


@group_app.post(
    "/create",
    summary="Create a new group",
    description=(
        "Create a group owned by the calling user, who becomes its first member. "
        "Avatars must be URLs or emoji descriptors; inline images are dropped."
    ),
    responses={
        200: {"description": "Group created."},
        400: {"description": "Invalid group data."},
    },
)
async def create_group(
    content: CreateGroupRequest,
    documents: DocumentsDependency,
    gateway: GatewayDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> CreateGroupResponse:
    log = log.bind(user_id=content.telegram_id)

    try:
        group_id = await groups_service.create(
            owner_id=content.telegram_id,
            owner_name=content.owner_name,
            name=content.name,
            description=content.description,
            is_private=content.is_private,
            is_premium_only=content.is_premium_only,
            avatar=content.avatar,
            documents=documents,
            settings=settings,
            gateway=gateway,
            log=log,
        )
    except groups_service.InvalidGroupData as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await log.ainfo("api.groups.created", group_id=group_id)
    return CreateGroupResponse(group_id=group_id)


@group_app.post(
    "/{group_id}/join",
    summary="Join a group",
    description=(
        "Joining a group you are already a member of succeeds and does nothing."
    ),
    responses={404: {"description": "Group not found."}},
)
async def join_group(
    group_id: str,
    content: JoinGroupRequest,
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> SuccessResponse:
    try:
        await groups_service.join(
            group_id=group_id,
            user_id=content.telegram_id,
            name=content.name,
            username=content.username,
            documents=documents,
            settings=settings,
            log=log,
        )
    except groups_service.GroupNotFound:
        raise not_found(group_id)

    return SuccessResponse()


@group_app.post(
    "/{group_id}/leave",
    summary="Leave a group",
    description="Owners cannot leave their own group; they delete it instead.",
    responses={
        400: {"description": "The owner tried to leave."},
        404: {"description": "Group not found."},
    },
)
async def leave_group(
    group_id: str,
    content: UserRequest,
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> SuccessResponse:
    try:
        await groups_service.leave(
            group_id=group_id,
            user_id=content.telegram_id,
            documents=documents,
            settings=settings,
            log=log,
        )
    except groups_service.GroupNotFound:
        raise not_found(group_id)
    except groups_service.OwnerCannotLeave as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return SuccessResponse()


@group_app.post(
    "/{group_id}/edit",
    summary="Edit a group",
    description=(
        "Update the fields present in the request; absent fields are left alone. "
        "Only the owner may edit. A `name` that is empty or only whitespace is "
        "rejected with 400 and nothing is changed; a `null` name leaves the name "
        "as it is."
    ),
    responses={
        400: {"description": "Empty or blank group name."},
        403: {"description": "Not the owner."},
        404: {"description": "Group not found."},
    },
)
async def edit_group(
    group_id: str,
    content: EditGroupRequest,
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> SuccessResponse:
    fields = content.model_fields_set - {"telegram_id"}
    patch = GroupPatch(**content.model_dump(include=fields))

    try:
        await groups_service.edit(
            group_id=group_id,
            user_id=content.telegram_id,
            patch=patch,
            documents=documents,
            settings=settings,
            log=log,
        )
    except groups_service.GroupNotFound:
        raise not_found(group_id)
    except groups_service.NotOwner as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except groups_service.InvalidGroupData as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return SuccessResponse()


@group_app.post(
    "/{group_id}/delete",
    summary="Delete a group",
    description="Only the owner (or the administrator) may delete a group.",
    responses={
        403: {"description": "Not the owner."},
        404: {"description": "Group not found."},
    },
)
async def delete_group(
    group_id: str,
    content: UserRequest,
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> SuccessResponse:
    try:
        await groups_service.delete_group(
            group_id=group_id,
            user_id=content.telegram_id,
            documents=documents,
            settings=settings,
            log=log,
        )
    except groups_service.GroupNotFound:
        raise not_found(group_id)
    except groups_service.NotAuthorized as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    return SuccessResponse()
