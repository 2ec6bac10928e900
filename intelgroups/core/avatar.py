"""
Avatar sanitization. Avatars are either a URL or an emoji descriptor; inline
image data would bloat the group document and is always dropped.
"""

import json
import re
from typing import Any

INLINE_IMAGE_MARKER = "data:image/"

URL_PATTERN = re.compile(r"^https?://.+", re.IGNORECASE)


def _is_url(value: Any) -> bool:
    return isinstance(value, str) and URL_PATTERN.match(value) is not None


def sanitize_avatar(avatar: Any) -> str | dict[str, Any] | None:
    """
    Normalize a client-supplied avatar.

    - Plain URLs are kept as they are.
    - `{"type": "url", "src": ...}` descriptors are unwrapped to the bare URL.
    - `{"type": "emoji", ...}` descriptors are kept verbatim, whether they
      arrive as an object or as its JSON text.
    - Inline image data, and anything else, becomes `None`.
    """
    if not avatar:
        return None

    if isinstance(avatar, str):
        if avatar.startswith(INLINE_IMAGE_MARKER):
            return None

        if avatar.startswith("{"):
            try:
                descriptor = json.loads(avatar)
            except json.JSONDecodeError:
                return None

            if not isinstance(descriptor, dict):
                return None

            kind = descriptor.get("type")

            if kind == "url" and _is_url(descriptor.get("src")):
                return descriptor["src"]

            if kind == "emoji":
                return avatar

            return None

        return avatar if _is_url(avatar) else None

    if isinstance(avatar, dict):
        kind = avatar.get("type")

        if kind == "url" and _is_url(avatar.get("src")):
            return avatar["src"]

        if kind == "emoji":
            return avatar

    return None
