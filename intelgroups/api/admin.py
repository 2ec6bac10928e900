"""
Administration endpoints.
"""

import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status

from intelgroups.core.group import GroupCollection
from intelgroups.core.models import (
    PremiumCheckResponse,
    ReconcileResponse,
    RosterResponse,
    SuccessResponse,
    UserRequest,
)
from intelgroups.service import groups as groups_service
from intelgroups.service import premium as premium_service

from .dependencies import (
    DocumentsDependency,
    GatewayDependency,
    LoggerDependency,
    SettingsDependency,
)


async def handle_admin(
    settings: SettingsDependency,
    log: LoggerDependency,
    x_admin_password: Annotated[str | None, Header()] = None,
) -> None:
    expected = settings.admin_password

    if (
        not expected
        or x_admin_password is None
        or not secrets.compare_digest(x_admin_password.encode(), expected.encode())
    ):
        await log.awarning("api.admin.unauthorized")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized"
        )


admin_routes = APIRouter(tags=["Administration"], dependencies=[Depends(handle_admin)])


@admin_routes.get(
    "/groups",
    summary="Get every group",
    description="The full group document, messages included.",
    responses={401: {"description": "Unauthorized to access this endpoint."}},
    response_model_exclude_none=True,
)
async def groups(
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> GroupCollection:
    result = await groups_service.read_all(
        documents=documents, settings=settings, log=log
    )
    await log.ainfo("api.admin.groups", number_of_groups=len(result))
    return result


@admin_routes.post(
    "/groups/{group_id}/delete",
    summary="Delete any group",
    responses={
        401: {"description": "Unauthorized to access this endpoint."},
        404: {"description": "Group not found."},
    },
)
async def delete_group(
    group_id: str,
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> SuccessResponse:
    log = log.bind(group_id=group_id)

    try:
        await groups_service.delete_group(
            group_id=group_id,
            user_id=None,
            documents=documents,
            settings=settings,
            log=log,
        )
    except groups_service.GroupNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    await log.ainfo("api.admin.group_deleted")
    return SuccessResponse()


@admin_routes.post(
    "/premium/check",
    summary="Check premium membership",
    responses={401: {"description": "Unauthorized to access this endpoint."}},
)
async def check_premium(
    content: UserRequest,
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> PremiumCheckResponse:
    roster = await premium_service.read_roster(
        documents=documents, settings=settings, log=log
    )
    return PremiumCheckResponse(is_premium=content.telegram_id in roster, users=roster)


@admin_routes.post(
    "/premium/add",
    summary="Grant premium membership",
    description="The user is notified when newly granted.",
    responses={401: {"description": "Unauthorized to access this endpoint."}},
)
async def add_premium(
    content: UserRequest,
    documents: DocumentsDependency,
    gateway: GatewayDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> RosterResponse:
    roster = await premium_service.grant(
        user_id=content.telegram_id,
        documents=documents,
        gateway=gateway,
        settings=settings,
        log=log,
    )
    await log.ainfo("api.admin.premium_added", user_id=content.telegram_id)
    return RosterResponse(users=roster)


@admin_routes.post(
    "/premium/remove",
    summary="Revoke premium membership",
    description="The user is notified when their membership is removed.",
    responses={401: {"description": "Unauthorized to access this endpoint."}},
)
async def remove_premium(
    content: UserRequest,
    documents: DocumentsDependency,
    gateway: GatewayDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> RosterResponse:
    roster = await premium_service.revoke(
        user_id=content.telegram_id,
        documents=documents,
        gateway=gateway,
        settings=settings,
        log=log,
    )
    await log.ainfo("api.admin.premium_removed", user_id=content.telegram_id)
    return RosterResponse(users=roster)


@admin_routes.post(
    "/reconcile",
    summary="Replay pending premium bookkeeping",
    description=(
        "Apply any group earnings and roster additions that could not be saved "
        "after the ledger settled a purchase."
    ),
    responses={401: {"description": "Unauthorized to access this endpoint."}},
)
async def reconcile(
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> ReconcileResponse:
    pending = await premium_service.reconcile(
        documents=documents, settings=settings, log=log
    )
    return ReconcileResponse(pending=pending)
