"""
Process-local cache of voice note payloads. Voice notes are never written to
the group document; only a reference to this cache is. Entries expire after
a while and the oldest are evicted when the cache is full, so a reference may
outlive its payload.
"""

import base64
import binascii
import re

from cachetools import TTLCache
from pydantic import BaseModel

DEFAULT_MEDIA_TYPE = "audio/webm"

DATA_URL = re.compile(r"^data:(?P<media_type>[\w.+-]+/[\w.+-]+)?(;[^,]*)?,")


class InvalidAudio(Exception):
    pass


class AudioClip(BaseModel):
    data: bytes
    media_type: str = DEFAULT_MEDIA_TYPE


def decode_audio(payload: str) -> AudioClip:
    """
    Decode a base64 payload, optionally wrapped as a `data:` URL.

    Raises
    ------
    InvalidAudio
        If the payload is empty or not base64.
    """
    media_type = DEFAULT_MEDIA_TYPE

    if match := DATA_URL.match(payload):
        media_type = match.group("media_type") or DEFAULT_MEDIA_TYPE
        payload = payload[match.end() :]

    # MIME encoders wrap base64 at 76 columns.
    payload = "".join(payload.split())

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidAudio("Voice payload is not valid base64")

    if not data:
        raise InvalidAudio("Voice payload is empty")

    return AudioClip(data=data, media_type=media_type)


class AudioCache:
    cache: TTLCache

    def __init__(self, maxsize: int = 256, ttl: float = 3600):
        self.cache = TTLCache(maxsize=maxsize, ttl=ttl)

    def put(self, message_id: str, clip: AudioClip):
        self.cache[message_id] = clip

    def get(self, message_id: str) -> AudioClip | None:
        return self.cache.get(message_id)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self.cache

    def __len__(self) -> int:
        return len(self.cache)
