"""
Generate random identifiers
"""

import secrets


def group_id():
    return secrets.token_hex(5).upper()


def message_id():
    return secrets.token_hex(8)


def outbox_id():
    return secrets.token_urlsafe(12)
