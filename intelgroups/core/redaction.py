"""
Redaction of user-originated text before it is relayed through the bot.
"""

import html
import re

LINK = re.compile(r"https?://\S+", re.IGNORECASE)
PHONE = re.compile(r"(\+\d{1,4}[\s-]?)?\(?\d{3,5}\)?[\s-]?\d{3,5}[\s-]?\d{3,6}")
LONG_NUMBER = re.compile(r"\b\d{9,}\b")


def redact(text: str) -> str:
    """
    Replace links, phone-number-shaped digit runs and long numbers with
    placeholders.
    """
    text = LINK.sub("[link]", text)
    text = PHONE.sub("[phone]", text)
    text = LONG_NUMBER.sub("[number]", text)
    return text


def relay(text: str) -> str:
    """
    Redact, then escape for the bot's HTML parse mode.
    """
    return html.escape(redact(text), quote=False)
