"""
Premium membership: the purchase flow, the premium roster and the
bookkeeping outbox.

A purchase moves through these steps:

1. Resolve the beneficiary. When the purchase is made from a group owned by
   someone else, that owner earns a referral share.
2. Settle with the ledger. The ledger checks the passcode, debits the buyer
   and credits the beneficiary in one operation. If it refuses, nothing has
   changed anywhere.
3. Local bookkeeping. The group's earnings and the premium roster are updated
   in two separate write-backs. The ledger has already moved the money, so a
   failure here is not rolled back: the remaining work is recorded in the
   outbox and applied later by `reconcile`.
"""

from pydantic import BaseModel
from structlog.typing import FilteringBoundLogger

from intelgroups.config.settings import Settings
from intelgroups.core import random
from intelgroups.core.codec import OUTBOX_CODEC, PREMIUM_CODEC, MalformedDocument
from intelgroups.core.group import PremiumRoster
from intelgroups.core.premium import (
    Beneficiary,
    PendingBookkeeping,
    PurchaseSettlement,
)
from intelgroups.store.documents import DocumentStore
from intelgroups.store.files import StoreUnavailable, VersionConflict

from . import groups as groups_service
from .ledger import BalanceLedger
from .notify import TelegramGateway

BOOKKEEPING_ERRORS = (
    StoreUnavailable,
    VersionConflict,
    MalformedDocument,
    groups_service.GroupNotFound,
)


class PurchaseResult(BaseModel):
    settlement: PurchaseSettlement
    beneficiary: Beneficiary | None = None
    earnings_credited: int = 0
    bookkeeping_complete: bool = True


async def read_roster(
    documents: DocumentStore, settings: Settings, log: FilteringBoundLogger
) -> PremiumRoster:
    document = await documents.read(
        name=settings.premium_file, codec=PREMIUM_CODEC, log=log
    )
    return document.value


async def is_premium(
    user_id: str,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> bool:
    roster = await read_roster(documents=documents, settings=settings, log=log)
    return user_id in roster


async def add_to_roster(
    user_id: str,
    note: str,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> tuple[bool, PremiumRoster]:
    """
    Add a user to the premium roster. Users already on it are not added
    twice.

    Returns
    -------
    added: bool
        Whether the user was newly added.
    roster: PremiumRoster
        The roster after the change.
    """
    log = log.bind(user_id=user_id)

    def add(roster: PremiumRoster) -> tuple[bool, PremiumRoster]:
        if user_id in roster:
            return False, list(roster)

        roster.append(user_id)
        return True, list(roster)

    added, roster = await documents.mutate(
        name=settings.premium_file,
        codec=PREMIUM_CODEC,
        mutation=add,
        note=note,
        log=log,
    )

    await log.ainfo("premium.roster.added" if added else "premium.roster.present")
    return added, roster


async def remove_from_roster(
    user_id: str,
    note: str,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> tuple[bool, PremiumRoster]:
    """
    Remove a user from the premium roster.

    Returns
    -------
    removed: bool
        Whether the user was on the roster.
    roster: PremiumRoster
        The roster after the change.
    """
    log = log.bind(user_id=user_id)

    def remove(roster: PremiumRoster) -> tuple[bool, PremiumRoster]:
        present = user_id in roster
        roster[:] = [x for x in roster if x != user_id]
        return present, list(roster)

    removed, roster = await documents.mutate(
        name=settings.premium_file,
        codec=PREMIUM_CODEC,
        mutation=remove,
        note=note,
        log=log,
    )

    await log.ainfo("premium.roster.removed" if removed else "premium.roster.absent")
    return removed, roster


async def grant(
    user_id: str,
    documents: DocumentStore,
    gateway: TelegramGateway,
    settings: Settings,
    log: FilteringBoundLogger,
) -> PremiumRoster:
    """
    Administrative grant of premium membership.
    """
    added, roster = await add_to_roster(
        user_id=user_id,
        note=f"Admin added premium: {user_id}",
        documents=documents,
        settings=settings,
        log=log,
    )

    if added:
        await gateway.send_text(
            chat_id=user_id,
            text="⭐ You have been granted Premium access by admin!",
            log=log,
        )

    return roster


async def revoke(
    user_id: str,
    documents: DocumentStore,
    gateway: TelegramGateway,
    settings: Settings,
    log: FilteringBoundLogger,
) -> PremiumRoster:
    """
    Administrative removal of premium membership.
    """
    removed, roster = await remove_from_roster(
        user_id=user_id,
        note=f"Admin removed premium: {user_id}",
        documents=documents,
        settings=settings,
        log=log,
    )

    if removed:
        await gateway.send_text(
            chat_id=user_id,
            text="⚠️ Your Premium access has been removed by admin.",
            log=log,
        )

    return roster


async def resolve_beneficiary(
    buyer_id: str,
    group_id: str | None,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> Beneficiary | None:
    """
    The owner of the group the purchase was made from, unless that is the
    buyer themselves. A group that cannot be read simply yields no
    beneficiary; the purchase goes ahead without a referral.
    """
    if not group_id:
        return None

    try:
        group = await groups_service.read_by_id(
            group_id=group_id, documents=documents, settings=settings, log=log
        )
    except (groups_service.GroupNotFound, StoreUnavailable, MalformedDocument) as e:
        await log.awarning("premium.beneficiary.lookup_failed", error=str(e))
        return None

    if not group.owner_id or group.owner_id == buyer_id:
        return None

    return Beneficiary(
        owner_id=group.owner_id,
        owner_name=group.owner_name or group.owner_id,
        group_id=group_id,
        group_name=group.name or group_id,
    )


async def purchase(
    buyer_id: str,
    buyer_name: str | None,
    buyer_username: str | None,
    passcode: str | None,
    group_id: str | None,
    documents: DocumentStore,
    ledger: BalanceLedger,
    settings: Settings,
    log: FilteringBoundLogger,
) -> PurchaseResult:
    """
    Buy premium membership.

    Parameters
    ----------
    buyer_id: str
        The paying user.
    buyer_name: str | None
        Display name, passed to the ledger for its records.
    buyer_username: str | None
        Telegram username, passed to the ledger for its records.
    passcode: str | None
        The one-time passcode issued by the ledger.
    group_id: str | None
        The group the purchase was made from, if any.

    Raises
    ------
    PurchaseRejected
        If the ledger refused the purchase. Nothing has been changed.
    LedgerUnavailable
        If the ledger could not be reached. Nothing has been changed.
    """
    log = log.bind(buyer_id=buyer_id, group_id=group_id)

    beneficiary = await resolve_beneficiary(
        buyer_id=buyer_id,
        group_id=group_id,
        documents=documents,
        settings=settings,
        log=log,
    )

    log = log.bind(beneficiary_id=beneficiary.owner_id if beneficiary else None)
    await log.ainfo("premium.purchase.owner_resolved")

    settlement = await ledger.settle_purchase(
        buyer_id=buyer_id,
        buyer_name=buyer_name,
        buyer_username=buyer_username,
        passcode=passcode,
        beneficiary=beneficiary,
        log=log,
    )

    await log.ainfo(
        "premium.purchase.ledger_settled", new_balance=settlement.new_buyer_balance
    )

    earnings = 0

    if beneficiary is not None:
        if settlement.owner_earned_ngn:
            earnings = int(settlement.owner_earned_ngn)
        else:
            earnings = settings.referral_share

    pending = PendingBookkeeping(
        id=random.outbox_id(),
        buyer_id=buyer_id,
        group_id=beneficiary.group_id if beneficiary else None,
        earnings=earnings,
        add_to_roster=True,
    )

    pending = await apply_bookkeeping(
        pending=pending, documents=documents, settings=settings, log=log
    )

    if not pending.settled:
        await record_pending(
            pending=pending, documents=documents, settings=settings, log=log
        )

    await log.ainfo("premium.purchase.completed", bookkeeping_complete=pending.settled)

    return PurchaseResult(
        settlement=settlement,
        beneficiary=beneficiary,
        earnings_credited=earnings - pending.earnings,
        bookkeeping_complete=pending.settled,
    )


async def apply_bookkeeping(
    pending: PendingBookkeeping,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> PendingBookkeeping:
    """
    Apply the local side of a settled purchase: credit the group's earnings
    and add the buyer to the roster. Each step is attempted independently.

    Returns
    -------
    PendingBookkeeping
        What is still left to do (`settled` when nothing is).
    """
    log = log.bind(outbox_id=pending.id, buyer_id=pending.buyer_id)
    remaining = pending.model_copy()

    if remaining.earnings and remaining.group_id:
        try:
            await groups_service.add_earnings(
                group_id=remaining.group_id,
                amount=remaining.earnings,
                purchase_id=remaining.id,
                documents=documents,
                settings=settings,
                log=log,
            )
            remaining.earnings = 0
        except groups_service.GroupNotFound:
            # The group was deleted in the meantime; the ledger has already
            # credited its owner, there is nothing left to record locally.
            await log.awarning("premium.bookkeeping.group_gone")
            remaining.earnings = 0
        except BOOKKEEPING_ERRORS as e:
            remaining.reason = str(e)
            await log.aerror(
                "premium.bookkeeping_failed",
                step="earnings",
                group_id=remaining.group_id,
                amount=remaining.earnings,
                error=str(e),
            )
    else:
        remaining.earnings = 0

    if remaining.add_to_roster:
        try:
            await add_to_roster(
                user_id=remaining.buyer_id,
                note=f"Premium added: {remaining.buyer_id}",
                documents=documents,
                settings=settings,
                log=log,
            )
            remaining.add_to_roster = False
        except BOOKKEEPING_ERRORS as e:
            remaining.reason = str(e)
            await log.aerror(
                "premium.bookkeeping_failed",
                step="roster",
                error=str(e),
            )

    return remaining


async def record_pending(
    pending: PendingBookkeeping,
    documents: DocumentStore,
    settings: Settings,
    log: FilteringBoundLogger,
) -> bool:
    """
    Append unfinished bookkeeping to the outbox. If even that fails, the
    error log entry is all that is left for manual reconciliation.
    """
    log = log.bind(outbox_id=pending.id, pending=pending.model_dump())

    def append(outbox: list[PendingBookkeeping]):
        outbox.append(pending)

    try:
        await documents.mutate(
            name=settings.outbox_file,
            codec=OUTBOX_CODEC,
            mutation=append,
            note=f"Pending bookkeeping for {pending.buyer_id}",
            log=log,
        )
    except BOOKKEEPING_ERRORS as e:
        await log.aerror("premium.outbox.record_failed", error=str(e))
        return False

    await log.awarning("premium.outbox.recorded")
    return True


async def read_outbox(
    documents: DocumentStore, settings: Settings, log: FilteringBoundLogger
) -> list[PendingBookkeeping]:
    document = await documents.read(
        name=settings.outbox_file, codec=OUTBOX_CODEC, log=log
    )
    return document.value


async def reconcile(
    documents: DocumentStore, settings: Settings, log: FilteringBoundLogger
) -> list[PendingBookkeeping]:
    """
    Replay the outbox. Entries are applied one at a time and each is updated
    (or removed, once settled) in the outbox straight afterwards. Replaying
    an entry again, after a failed outbox update or from a concurrent
    reconcile, is harmless: earnings are keyed by the entry ID in the group
    itself and roster additions are idempotent.

    Returns
    -------
    list[PendingBookkeeping]
        The entries that are still pending.
    """
    outbox = await read_outbox(documents=documents, settings=settings, log=log)
    await log.ainfo("premium.reconcile.started", number_pending=len(outbox))

    for entry in outbox:
        remaining = await apply_bookkeeping(
            pending=entry, documents=documents, settings=settings, log=log
        )

        if remaining == entry:
            continue

        def update(current: list[PendingBookkeeping]):
            current[:] = [
                remaining if x.id == entry.id else x
                for x in current
                if x.id != entry.id or not remaining.settled
            ]

        try:
            await documents.mutate(
                name=settings.outbox_file,
                codec=OUTBOX_CODEC,
                mutation=update,
                note=f"Reconciled bookkeeping for {entry.buyer_id}",
                log=log,
            )
        except BOOKKEEPING_ERRORS as e:
            await log.aerror(
                "premium.outbox.update_failed", outbox_id=entry.id, error=str(e)
            )

    left = await read_outbox(documents=documents, settings=settings, log=log)
    await log.ainfo("premium.reconcile.finished", number_pending=len(left))
    return left
