"""
Codec for the persisted documents. Each document is a JSON value preceded by
a fixed assignment prefix (e.g. `window.GROUPS_DATA = `) so that the same
file can be loaded by the browser pages as a script asset.
"""

from typing import Any, Callable, Generic, TypeVar

from pydantic import ConfigDict, TypeAdapter, ValidationError

from .group import GroupCollection, PremiumRoster
from .premium import PendingBookkeeping

T = TypeVar("T")


class MalformedDocument(Exception):
    pass


class DocumentCodec(Generic[T]):
    """
    Encode and decode a single document type. `decode(encode(x)) == x` for
    any valid value.
    """

    prefix: str
    adapter: TypeAdapter
    empty: Callable[[], T]

    def __init__(
        self,
        prefix: str,
        schema: Any,
        empty: Callable[[], T],
        config: ConfigDict | None = None,
    ):
        self.prefix = prefix
        self.adapter = TypeAdapter(schema, config=config)
        self.empty = empty

    def decode(self, content: bytes) -> T:
        """
        Raises
        ------
        MalformedDocument
            If the content (after the prefix is removed) is not a valid
            document.
        """
        try:
            text = content.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise MalformedDocument(f"Document is not valid UTF-8: {e}")

        token = self.prefix.strip()

        if token and text.startswith(token):
            text = text[len(token) :].strip()

        text = text.rstrip(";").strip()

        if not text:
            raise MalformedDocument("Document is empty")

        try:
            return self.adapter.validate_json(text)
        except ValidationError as e:
            raise MalformedDocument(f"Could not parse document: {e}")

    def encode(self, value: T) -> bytes:
        body = self.adapter.dump_json(
            value, indent=2, by_alias=True, exclude_none=True
        )
        return self.prefix.encode("utf-8") + body


GROUPS_CODEC: DocumentCodec[GroupCollection] = DocumentCodec(
    prefix="window.GROUPS_DATA = ", schema=GroupCollection, empty=dict
)

PREMIUM_CODEC: DocumentCodec[PremiumRoster] = DocumentCodec(
    prefix="window.PREMIUM_USERS = ",
    schema=PremiumRoster,
    empty=list,
    config=ConfigDict(coerce_numbers_to_str=True),
)

OUTBOX_CODEC: DocumentCodec[list[PendingBookkeeping]] = DocumentCodec(
    prefix="", schema=list[PendingBookkeeping], empty=list
)
