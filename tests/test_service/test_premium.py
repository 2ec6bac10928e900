"""
Tests the premium purchase flow, the roster and the bookkeeping outbox.
"""

import asyncio

import pytest

from intelgroups.core.codec import GROUPS_CODEC
from intelgroups.core.group import GroupData, MemberData
from intelgroups.core.premium import PendingBookkeeping
from intelgroups.service import groups as groups_service
from intelgroups.service import premium as premium_service
from intelgroups.service.ledger import LedgerUnavailable, PurchaseRejected
from intelgroups.service.mock import MockLedger
from intelgroups.store.files import StoreUnavailable
from intelgroups.store.mock import MockFileStore

GROUP_ID = "A1B2C3D4E5"
OWNER = "100"
BUYER = "200"


class FlakyFileStore(MockFileStore):
    """
    Writes to the files listed in `broken` fail.
    """

    broken: set[str]

    def __init__(self, blobs=None):
        super().__init__(blobs=blobs)
        self.broken = set()

    async def write(self, name, content, version, note):
        if name in self.broken:
            raise StoreUnavailable(f"{name} is broken")

        return await super().write(name, content, version, note)


@pytest.fixture
def file_store(server_settings):
    group = GroupData(
        name="Traders",
        owner_id=OWNER,
        owner_name="Olive",
        members={OWNER: MemberData(name="Olive"), BUYER: MemberData(name="Bola")},
    )

    return FlakyFileStore(
        blobs={server_settings.groups_file: GROUPS_CODEC.encode({GROUP_ID: group})}
    )


async def fund(ledger, logger, user_id=BUYER, amount=6000):
    ledger.balances[user_id] = amount
    await ledger.issue_passcode(user_id=user_id, log=logger)
    return ledger.passcodes[user_id]


async def buy(documents, ledger, server_settings, logger, passcode, **kwargs):
    arguments = dict(
        buyer_id=BUYER,
        buyer_name="Bola",
        buyer_username="bola",
        group_id=GROUP_ID,
    )
    arguments.update(kwargs)

    return await premium_service.purchase(
        **arguments,
        passcode=passcode,
        documents=documents,
        ledger=ledger,
        settings=server_settings,
        log=logger,
    )


async def group_earnings(documents, server_settings, logger):
    group = await groups_service.read_by_id(
        group_id=GROUP_ID, documents=documents, settings=server_settings, log=logger
    )
    return group.total_earnings


async def roster(documents, server_settings, logger):
    return await premium_service.read_roster(
        documents=documents, settings=server_settings, log=logger
    )


@pytest.mark.asyncio
async def test_purchase(documents, ledger, server_settings, logger):
    passcode = await fund(ledger, logger)

    result = await buy(documents, ledger, server_settings, logger, passcode)

    assert result.bookkeeping_complete
    assert result.beneficiary.owner_id == OWNER
    assert result.earnings_credited == 2500
    assert result.settlement.new_buyer_balance == 1000

    assert ledger.balances == {BUYER: 1000, OWNER: 2500}
    assert await group_earnings(documents, server_settings, logger) == 2500
    assert await roster(documents, server_settings, logger) == [BUYER]
    assert await premium_service.is_premium(
        user_id=BUYER, documents=documents, settings=server_settings, log=logger
    )

    # A second purchase credits the group again, but the roster holds the
    # buyer only once.
    passcode = await fund(ledger, logger)
    await buy(documents, ledger, server_settings, logger, passcode)

    assert await group_earnings(documents, server_settings, logger) == 5000
    assert await roster(documents, server_settings, logger) == [BUYER]


@pytest.mark.asyncio
async def test_purchase_uses_ledger_share(documents, server_settings, logger):
    ledger = MockLedger(premium_price=5000, referral_share=3000)
    passcode = await fund(ledger, logger)

    result = await buy(documents, ledger, server_settings, logger, passcode)

    assert result.earnings_credited == 3000
    assert await group_earnings(documents, server_settings, logger) == 3000


@pytest.mark.asyncio
async def test_purchase_in_own_group(documents, ledger, server_settings, logger):
    passcode = await fund(ledger, logger, user_id=OWNER)

    result = await buy(
        documents, ledger, server_settings, logger, passcode, buyer_id=OWNER
    )

    assert result.beneficiary is None
    assert result.earnings_credited == 0
    assert ledger.balances == {OWNER: 1000}
    assert await group_earnings(documents, server_settings, logger) == 0
    assert await roster(documents, server_settings, logger) == [OWNER]


@pytest.mark.asyncio
@pytest.mark.parametrize("group_id", [None, "", "MISSING"])
async def test_purchase_without_group(
    documents, ledger, server_settings, logger, group_id
):
    passcode = await fund(ledger, logger)

    result = await buy(
        documents, ledger, server_settings, logger, passcode, group_id=group_id
    )

    assert result.beneficiary is None
    assert ledger.balances == {BUYER: 1000}
    assert await roster(documents, server_settings, logger) == [BUYER]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "passcode,balance,reason",
    [
        ("wrong", 6000, "Invalid passcode"),
        (None, 6000, "Invalid passcode"),
        ("000001", 4999, "Insufficient balance"),
    ],
)
async def test_purchase_rejected(
    documents, ledger, file_store, server_settings, logger, passcode, balance, reason
):
    await fund(ledger, logger, amount=balance)
    before = dict(file_store.blobs)

    with pytest.raises(PurchaseRejected, match=reason):
        await buy(documents, ledger, server_settings, logger, passcode)

    assert file_store.writes == []
    assert file_store.blobs == before
    assert ledger.balances == {BUYER: balance}


@pytest.mark.asyncio
async def test_purchase_ledger_unavailable(
    documents, ledger, file_store, server_settings, logger
):
    passcode = await fund(ledger, logger)
    ledger.unavailable = True

    with pytest.raises(LedgerUnavailable):
        await buy(documents, ledger, server_settings, logger, passcode)

    assert file_store.writes == []


@pytest.mark.asyncio
async def test_bookkeeping_failure_is_recorded(
    documents, ledger, file_store, server_settings, logger
):
    passcode = await fund(ledger, logger)
    file_store.broken = {server_settings.groups_file, server_settings.premium_file}

    result = await buy(documents, ledger, server_settings, logger, passcode)

    # The ledger has moved the money regardless.
    assert ledger.balances == {BUYER: 1000, OWNER: 2500}
    assert not result.bookkeeping_complete
    assert result.earnings_credited == 0

    [pending] = await premium_service.read_outbox(
        documents=documents, settings=server_settings, log=logger
    )

    assert pending.buyer_id == BUYER
    assert pending.group_id == GROUP_ID
    assert pending.earnings == 2500
    assert pending.add_to_roster
    assert "broken" in pending.reason

    # Once the store recovers, reconciliation applies what was missed, once.
    file_store.broken = set()

    for _ in range(2):
        left = await premium_service.reconcile(
            documents=documents, settings=server_settings, log=logger
        )

        assert left == []
        assert await group_earnings(documents, server_settings, logger) == 2500
        assert await roster(documents, server_settings, logger) == [BUYER]


@pytest.mark.asyncio
async def test_partial_bookkeeping_failure(
    documents, ledger, file_store, server_settings, logger
):
    passcode = await fund(ledger, logger)
    file_store.broken = {server_settings.premium_file}

    result = await buy(documents, ledger, server_settings, logger, passcode)

    assert not result.bookkeeping_complete
    assert result.earnings_credited == 2500
    assert await group_earnings(documents, server_settings, logger) == 2500

    [pending] = await premium_service.read_outbox(
        documents=documents, settings=server_settings, log=logger
    )

    assert pending.earnings == 0
    assert pending.add_to_roster

    # Still broken: the entry stays put.
    left = await premium_service.reconcile(
        documents=documents, settings=server_settings, log=logger
    )
    assert [x.id for x in left] == [pending.id]

    file_store.broken = set()

    left = await premium_service.reconcile(
        documents=documents, settings=server_settings, log=logger
    )

    assert left == []
    assert await group_earnings(documents, server_settings, logger) == 2500
    assert await roster(documents, server_settings, logger) == [BUYER]


@pytest.mark.asyncio
async def test_reconcile_survives_outbox_failure(
    documents, ledger, file_store, server_settings, logger
):
    passcode = await fund(ledger, logger)
    file_store.broken = {server_settings.groups_file}

    await buy(documents, ledger, server_settings, logger, passcode)

    # The credit lands but the outbox cannot be cleared.
    file_store.broken = {server_settings.outbox_file}

    left = await premium_service.reconcile(
        documents=documents, settings=server_settings, log=logger
    )

    assert len(left) == 1
    assert left[0].earnings == 2500
    assert await group_earnings(documents, server_settings, logger) == 2500

    # Replaying the stale entry does not credit the group again.
    file_store.broken = set()

    left = await premium_service.reconcile(
        documents=documents, settings=server_settings, log=logger
    )

    assert left == []
    assert await group_earnings(documents, server_settings, logger) == 2500
    assert await roster(documents, server_settings, logger) == [BUYER]


@pytest.mark.asyncio
async def test_concurrent_reconcile(
    documents, ledger, file_store, server_settings, logger
):
    passcode = await fund(ledger, logger)
    file_store.broken = {server_settings.groups_file}

    await buy(documents, ledger, server_settings, logger, passcode)

    file_store.broken = set()

    results = await asyncio.gather(
        premium_service.reconcile(
            documents=documents, settings=server_settings, log=logger
        ),
        premium_service.reconcile(
            documents=documents, settings=server_settings, log=logger
        ),
    )

    assert results == [[], []]
    assert await group_earnings(documents, server_settings, logger) == 2500
    assert await roster(documents, server_settings, logger) == [BUYER]


@pytest.mark.asyncio
async def test_bookkeeping_for_deleted_group(documents, server_settings, logger):
    await groups_service.delete_group(
        group_id=GROUP_ID,
        user_id=None,
        documents=documents,
        settings=server_settings,
        log=logger,
    )

    remaining = await premium_service.apply_bookkeeping(
        pending=PendingBookkeeping(
            id="x", buyer_id=BUYER, group_id=GROUP_ID, earnings=2500, add_to_roster=True
        ),
        documents=documents,
        settings=server_settings,
        log=logger,
    )

    assert remaining.settled
    assert await roster(documents, server_settings, logger) == [BUYER]


@pytest.mark.asyncio
async def test_grant_and_revoke(documents, gateway, server_settings, logger):
    async def grant():
        return await premium_service.grant(
            user_id=BUYER,
            documents=documents,
            gateway=gateway,
            settings=server_settings,
            log=logger,
        )

    async def revoke():
        return await premium_service.revoke(
            user_id=BUYER,
            documents=documents,
            gateway=gateway,
            settings=server_settings,
            log=logger,
        )

    assert await grant() == [BUYER]
    assert await grant() == [BUYER]

    [notice] = gateway.sent_to(BUYER)
    assert "granted Premium" in notice.text

    assert await revoke() == []
    assert await revoke() == []

    assert len(gateway.sent_to(BUYER)) == 2
    assert "removed" in gateway.sent_to(BUYER)[-1].text
