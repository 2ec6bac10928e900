"""
Deposit notices. A user reports a deposit with proof of payment; the notice
is forwarded to the administrator, who credits the ledger by hand. Nothing
here touches a balance.
"""

import html

from structlog.typing import FilteringBoundLogger

from intelgroups.config.settings import Settings

from .notify import TelegramGateway


def format_amount(amount: float) -> str:
    return f"{amount:,.0f}" if float(amount).is_integer() else f"{amount:,.2f}"


async def submit(
    user_id: str,
    name: str | None,
    username: str | None,
    method: str | None,
    amount: float,
    whatsapp: str | None,
    image: str,
    gateway: TelegramGateway,
    settings: Settings,
    log: FilteringBoundLogger,
) -> bool:
    """
    Forward a deposit notice to the administrator chat and confirm receipt to
    the user.

    Returns
    -------
    forwarded: bool
        Whether the administrator notice was delivered.
    """
    log = log.bind(user_id=user_id, amount=amount, method=method)
    formatted = format_amount(amount)

    caption = (
        "<b>💰 DEPOSIT REQUEST</b>\n"
        "━━━━━━━━━━━━━━━━━━━━\n"
        f"👤 <b>Name:</b> {html.escape(name or '')}\n"
        f"🔗 <b>Username:</b> {html.escape(username or '')}\n"
        f"🆔 <b>ID:</b> <code>{html.escape(user_id)}</code>\n"
        f"💳 <b>Method:</b> {html.escape(method or '')}\n"
        f"💵 <b>Amount:</b> ₦{formatted}\n"
        f"📱 <b>WhatsApp:</b> {html.escape(whatsapp or 'N/A')}\n"
        "━━━━━━━━━━━━━━━━━━━━\n"
        f"Credit ID <code>{html.escape(user_id)}</code> ₦{formatted} "
        "via balance server admin."
    )

    forwarded = await gateway.send_photo(
        chat_id=settings.admin_id, photo=image, caption=caption, log=log
    )

    await gateway.send_text(
        chat_id=user_id,
        text=(
            f"✅ Deposit request of ₦{formatted} received!\n"
            "Admin will review and credit your balance shortly."
        ),
        log=log,
    )

    await log.ainfo("deposit.submitted", forwarded=forwarded)
    return forwarded
