"""
Balances, premium purchases and deposit notices. Balances live with the
ledger; these endpoints relay to it.
"""

from fastapi import APIRouter, HTTPException, status

from intelgroups.core.models import (
    BalanceRequest,
    BuyPremiumRequest,
    BuyPremiumResponse,
    DepositRequest,
    PasscodeResponse,
    SuccessResponse,
    UserRequest,
)
from intelgroups.core.premium import Balance
from intelgroups.service import deposit as deposit_service
from intelgroups.service import premium as premium_service
from intelgroups.service.ledger import PasscodeRequestFailed, PurchaseRejected

from .dependencies import (
    DocumentsDependency,
    GatewayDependency,
    LedgerDependency,
    LoggerDependency,
    SettingsDependency,
)

premium_app = APIRouter(tags=["Premium"])


@premium_app.post(
    "/get-balance",
    summary="Get a user's balance",
    description="Relayed from the ledger. Without a user, the balance is zero.",
    responses={502: {"description": "The ledger could not be reached."}},
)
async def get_balance(
    content: BalanceRequest, ledger: LedgerDependency, log: LoggerDependency
) -> Balance:
    if not content.telegram_id:
        return Balance()

    log = log.bind(user_id=content.telegram_id)
    return await ledger.get_balance(user_id=content.telegram_id, log=log)


@premium_app.get(
    "/api/premium-list",
    summary="List premium users",
)
async def premium_list(
    documents: DocumentsDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> list[str]:
    return await premium_service.read_roster(
        documents=documents, settings=settings, log=log
    )


@premium_app.post(
    "/generate-premium-passcode",
    summary="Request a purchase passcode",
    description=(
        "Asks the ledger to send the user a one-time passcode, which is "
        "required to buy premium."
    ),
    responses={
        400: {"description": "The ledger refused to issue a passcode."},
        502: {"description": "The ledger could not be reached."},
    },
)
async def generate_passcode(
    content: UserRequest, ledger: LedgerDependency, log: LoggerDependency
) -> PasscodeResponse:
    log = log.bind(user_id=content.telegram_id)

    try:
        await ledger.issue_passcode(user_id=content.telegram_id, log=log)
    except PasscodeRequestFailed as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return PasscodeResponse(message="Passcode sent to your Telegram")


@premium_app.post(
    "/api/buy-premium",
    summary="Buy premium",
    description=(
        "Settles the purchase with the ledger, then records the buyer as premium. "
        "When bought from a group owned by someone else, that owner earns a "
        "referral share."
    ),
    responses={
        400: {"description": "The ledger rejected the purchase."},
        502: {"description": "The ledger could not be reached."},
    },
)
async def buy_premium(
    content: BuyPremiumRequest,
    documents: DocumentsDependency,
    ledger: LedgerDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> BuyPremiumResponse:
    try:
        result = await premium_service.purchase(
            buyer_id=content.telegram_id,
            buyer_name=content.name,
            buyer_username=content.username,
            passcode=content.passcode,
            group_id=content.group_id,
            documents=documents,
            ledger=ledger,
            settings=settings,
            log=log,
        )
    except PurchaseRejected as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    settlement = result.settlement

    return BuyPremiumResponse(
        message=settlement.message or "🎉 You are now Premium!",
        new_balance=settlement.new_buyer_balance,
        buyer_usd=settlement.buyer_usd,
        premium_cost_ngn=settlement.premium_cost_ngn,
        premium_cost_usd=settlement.premium_cost_usd,
        owner_earned_ngn=settlement.owner_earned_ngn,
        owner_earned_usd=settlement.owner_earned_usd,
    )


@premium_app.post(
    "/deposit",
    summary="Report a deposit",
    description=(
        "Forwards proof of a deposit to the administrator, who credits the "
        "ledger manually. No balance is changed here."
    ),
)
async def deposit(
    content: DepositRequest,
    gateway: GatewayDependency,
    settings: SettingsDependency,
    log: LoggerDependency,
) -> SuccessResponse:
    await deposit_service.submit(
        user_id=content.telegram_id,
        name=content.name,
        username=content.username,
        method=content.method,
        amount=content.amount,
        whatsapp=content.whatsapp,
        image=content.image,
        gateway=gateway,
        settings=settings,
        log=log,
    )

    return SuccessResponse()
