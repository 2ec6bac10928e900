"""
Service layer for groups.

All groups live in a single document. Reads decode a fresh copy of it; every
change goes through `DocumentStore.mutate`, so each operation below is one
read-modify-write cycle against the current version of the document.
"""

import html

from structlog.typing import FilteringBoundLogger

from intelgroups.config.settings import Settings
from intelgroups.core import random
from intelgroups.core.avatar import sanitize_avatar
from intelgroups.core.codec import GROUPS_CODEC
from intelgroups.core.group import (
    GroupCollection,
    GroupData,
    GroupPatch,
    GroupSummary,
    MemberData,
    MessageData,
    timestamp,
)
from intelgroups.store.documents import DocumentStore

from .notify import TelegramGateway

NAME_LENGTH = 64
DESCRIPTION_LENGTH = 255


class GroupNotFound(Exception):
    pass


class InvalidGroupData(Exception):
    pass


class NotOwner(Exception):
    pass


class NotAuthorized(Exception):
    pass


class OwnerCannotLeave(Exception):
    pass


def clean_name(name: str | None) -> str:
    name = (name or "").strip()

    if not name:
        raise InvalidGroupData("Group name must not be empty")

    return name[:NAME_LENGTH]


def clean_description(description: str | None) -> str:
    return (description or "")[:DESCRIPTION_LENGTH]


def get_group(groups: GroupCollection, group_id: str) -> GroupData:
    try:
        return groups[group_id]
    except KeyError:
        raise GroupNotFound(f"Group {group_id} not found")


def system_message(text: str) -> MessageData:
    return MessageData(id=random.message_id(), type="system", text=text)


async def read_all(
    documents: DocumentStore, settings: Settings, log: FilteringBoundLogger
) -> GroupCollection:
    """
    Read every group, including message logs.
    """
    document = await documents.read(
        name=settings.groups_file, codec=GROUPS_CODEC, log=log
    )
    await log.adebug("group.read_all", number_of_groups=len(document.value))
    return document.value


async def get_group_list(
    documents: DocumentStore, settings: Settings, log: FilteringBoundLogger
) -> dict[str, GroupSummary]:
    """
    Get all groups without their message logs.
    """
    groups = await read_all(documents=documents, settings=settings, log=log)
    return {group_id: group.summary() for group_id, group in groups.items()}


async def read_by_id(
    group_id: str,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> GroupData:
    """
    Read a group by its ID.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)
    groups = await read_all(documents=documents, settings=settings, log=log)

    try:
        group = get_group(groups, group_id)
    except GroupNotFound:
        await log.ainfo("group.not_found")
        raise

    await log.adebug("group.found")
    return group


async def create(
    owner_id: str,
    owner_name: str | None,
    name: str,
    description: str | None,
    is_private: bool,
    is_premium_only: bool,
    avatar: object,
    documents: DocumentStore,
    settings: Settings,
    gateway: TelegramGateway,
    log: FilteringBoundLogger,
) -> str:
    """
    Create a new group, with its owner as the only member.

    Parameters
    ----------
    owner_id: str
        The user creating (and owning) the group.
    owner_name: str | None
        Display name of the owner.
    name: str
        Group name, truncated to 64 characters.
    description: str | None
        Group description, truncated to 255 characters.
    is_private: bool
        Whether the group is hidden from public listings.
    is_premium_only: bool
        Whether only premium users may take part.
    avatar
        A URL or an emoji descriptor. Anything else (notably inline image
        data) is dropped.

    Returns
    -------
    group_id: str
        The identifier of the new group.

    Raises
    ------
    InvalidGroupData
        If the name is empty.
    """
    name = clean_name(name)
    description = clean_description(description)
    avatar = sanitize_avatar(avatar)

    log = log.bind(owner_id=owner_id, group_name=name)

    def insert(groups: GroupCollection) -> str:
        group_id = random.group_id()

        while group_id in groups:
            group_id = random.group_id()

        now = timestamp()

        groups[group_id] = GroupData(
            name=name,
            description=description,
            owner_id=owner_id,
            owner_name=owner_name,
            avatar=avatar,
            is_private=bool(is_private),
            is_premium_only=bool(is_premium_only),
            created_at=now,
            total_earnings=0,
            members={owner_id: MemberData(name=owner_name, joined_at=now)},
            messages=[],
        )

        return group_id

    group_id = await documents.mutate(
        name=settings.groups_file,
        codec=GROUPS_CODEC,
        mutation=insert,
        note="Create group",
        log=log,
    )

    await log.ainfo("group.created", group_id=group_id)

    await gateway.send_text(
        chat_id=settings.admin_id,
        text=(
            "🆕 <b>New Group Created</b>\n"
            f"📌 {html.escape(name)}\n"
            f"🆔 {group_id}\n"
            f"👤 {html.escape(owner_name or '')} ({owner_id})"
        ),
        log=log,
    )

    return group_id


async def join(
    group_id: str,
    user_id: str,
    name: str | None,
    username: str | None,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> bool:
    """
    Add a user to a group. Joining a group you are already in does nothing.

    Returns
    -------
    joined: bool
        Whether the user was newly added.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id, user_id=user_id)
    display_name = name or user_id

    def add_member(groups: GroupCollection) -> bool:
        group = get_group(groups, group_id)

        if group.is_member(user_id):
            return False

        now = timestamp()
        group.members[user_id] = MemberData(
            name=name, username=username, joined_at=now
        )
        group.append(
            system_message(f"{display_name} joined the group"),
            retention=settings.message_retention,
        )
        group.preview(f"{display_name} joined", at=now)

        return True

    joined = await documents.mutate(
        name=settings.groups_file,
        codec=GROUPS_CODEC,
        mutation=add_member,
        note=f"{user_id} joined {group_id}",
        log=log,
    )

    if joined:
        await log.ainfo("group.user_added")
    else:
        await log.ainfo("group.user_already_member")

    return joined


async def leave(
    group_id: str,
    user_id: str,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> bool:
    """
    Remove a user from a group. Leaving a group you are not in does nothing.

    Returns
    -------
    left: bool
        Whether the user was a member.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    OwnerCannotLeave
        If the user owns the group; owners delete their groups instead.
    """
    log = log.bind(group_id=group_id, user_id=user_id)

    def remove_member(groups: GroupCollection) -> bool:
        group = get_group(groups, group_id)

        if group.owner_id == user_id:
            raise OwnerCannotLeave("Owner cannot leave. Delete the group instead.")

        member = group.members.pop(user_id, None)

        if member is None:
            return False

        group.append(
            system_message(f"{member.name or user_id} left the group"),
            retention=settings.message_retention,
        )

        return True

    try:
        left = await documents.mutate(
            name=settings.groups_file,
            codec=GROUPS_CODEC,
            mutation=remove_member,
            note=f"{user_id} left {group_id}",
            log=log,
        )
    except OwnerCannotLeave:
        await log.awarning("group.owner_cannot_leave")
        raise

    if left:
        await log.ainfo("group.user_removed")
    else:
        await log.ainfo("group.user_not_member")

    return left


async def edit(
    group_id: str,
    user_id: str,
    patch: GroupPatch,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> GroupData:
    """
    Apply a partial update to a group. Only the owner may edit.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    NotOwner
        If the user does not own the group.
    InvalidGroupData
        If the patch sets an empty name.
    """
    log = log.bind(group_id=group_id, user_id=user_id, fields=patch.model_fields_set)
    changes = patch.model_fields_set

    # An explicit null name leaves the name alone; an empty one is an error.
    name = clean_name(patch.name) if patch.name is not None else None

    def apply(groups: GroupCollection) -> GroupData:
        group = get_group(groups, group_id)

        if group.owner_id != user_id:
            raise NotOwner("Only the group owner can edit")

        if name is not None:
            group.name = name
        if "description" in changes:
            group.description = clean_description(patch.description)
        if "avatar" in changes:
            group.avatar = sanitize_avatar(patch.avatar)
        if "is_private" in changes:
            group.is_private = bool(patch.is_private)
        if "is_premium_only" in changes:
            group.is_premium_only = bool(patch.is_premium_only)

        return group

    try:
        group = await documents.mutate(
            name=settings.groups_file,
            codec=GROUPS_CODEC,
            mutation=apply,
            note=f"Edit group {group_id}",
            log=log,
        )
    except NotOwner:
        await log.awarning("group.edit.access_denied")
        raise

    await log.ainfo("group.edited")
    return group


async def delete_group(
    group_id: str,
    user_id: str | None,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> None:
    """
    Delete a group along with its members and messages. Only the owner or the
    administrator may delete a group; pass `user_id=None` for administrative
    deletions that have already been authorized.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    NotAuthorized
        If the user is neither the owner nor the administrator.
    """
    log = log.bind(group_id=group_id, user_id=user_id)

    def remove(groups: GroupCollection):
        group = get_group(groups, group_id)

        if user_id is not None and user_id not in {group.owner_id, settings.admin_id}:
            raise NotAuthorized("Only the group owner can delete")

        del groups[group_id]

    note = f"Delete group {group_id}" if user_id else f"Admin deleted group {group_id}"

    try:
        await documents.mutate(
            name=settings.groups_file,
            codec=GROUPS_CODEC,
            mutation=remove,
            note=note,
            log=log,
        )
    except NotAuthorized:
        await log.awarning("group.delete.access_denied")
        raise

    await log.ainfo("group.deleted")


async def add_earnings(
    group_id: str,
    amount: int,
    purchase_id: str,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> int:
    """
    Credit a premium sale to a group's running total. Each purchase is
    credited at most once: the purchase ID is stored with the group in the
    same write as the new total, and a purchase already recorded there is
    skipped.

    Returns
    -------
    total_earnings: int
        The total after the credit.

    Raises
    ------
    GroupNotFound
        If the group no longer exists.
    """
    log = log.bind(group_id=group_id, amount=amount, purchase_id=purchase_id)

    def credit(groups: GroupCollection) -> tuple[bool, int]:
        group = get_group(groups, group_id)

        if purchase_id in group.credited_purchases:
            return False, group.total_earnings

        group.credited_purchases.append(purchase_id)
        group.total_earnings += amount
        return True, group.total_earnings

    credited, total = await documents.mutate(
        name=settings.groups_file,
        codec=GROUPS_CODEC,
        mutation=credit,
        note=f"Premium sale in group {group_id}",
        log=log,
    )

    if credited:
        await log.ainfo("group.earnings_added", total_earnings=total)
    else:
        await log.ainfo("group.earnings_already_credited", total_earnings=total)

    return total
