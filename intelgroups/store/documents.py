"""
Read-modify-write access to whole documents kept in a versioned file store.

Every mutation follows the same protocol: read the document together with
its version, apply the mutation to the freshly decoded value, and write it
back presenting the version that was read. When another writer got there
first the store reports a conflict, and the whole cycle is repeated against
the new content, a bounded number of times.
"""

from typing import Callable, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from structlog.typing import FilteringBoundLogger

from intelgroups.core.codec import DocumentCodec

from .files import BlobNotFound, VersionConflict, VersionedFileStore

T = TypeVar("T")
R = TypeVar("R")


class Document(BaseModel, Generic[T]):
    """
    A decoded document and the version it was read at. `version` is `None`
    when the document does not exist yet.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: T
    version: str | None = None
    content: bytes | None = None


class DocumentStore:
    """
    Typed document access over a `VersionedFileStore`. Expected usage:

    documents = DocumentStore(files=GitHubFileStore(...))

    groups = await documents.read(name="groups.js", codec=GROUPS_CODEC, log=log)

    def rename(groups):
        groups["A1B2C3D4E5"].name = "New name"

    await documents.mutate(
        name="groups.js",
        codec=GROUPS_CODEC,
        mutation=rename,
        note="Rename group",
        log=log,
    )
    """

    files: VersionedFileStore
    write_attempts: int

    def __init__(self, files: VersionedFileStore, write_attempts: int = 3):
        self.files = files
        self.write_attempts = max(1, write_attempts)

    async def read(
        self, name: str, codec: DocumentCodec[T], log: FilteringBoundLogger
    ) -> Document[T]:
        """
        Read and decode a document. A document that does not exist yet reads
        as the codec's empty value.

        Raises
        ------
        StoreUnavailable
            If the store cannot be reached.
        MalformedDocument
            If the stored content cannot be decoded.
        """
        try:
            blob = await self.files.read(name)
        except BlobNotFound:
            await log.ainfo("documents.not_found", document=name)
            return Document(value=codec.empty())

        return Document(
            value=codec.decode(blob.content),
            version=blob.version,
            content=blob.content,
        )

    async def write(
        self,
        name: str,
        codec: DocumentCodec[T],
        document: Document[T],
        note: str,
        log: FilteringBoundLogger,
    ) -> str:
        """
        Write a document back, presenting the version it was read at.

        Raises
        ------
        VersionConflict
            If the document has changed since it was read.
        StoreUnavailable
            If the store cannot be reached.
        """
        version = await self.files.write(
            name=name,
            content=codec.encode(document.value),
            version=document.version,
            note=note,
        )
        await log.ainfo("documents.written", document=name, note=note)
        return version

    async def mutate(
        self,
        name: str,
        codec: DocumentCodec[T],
        mutation: Callable[[T], R],
        note: str,
        log: FilteringBoundLogger,
    ) -> R:
        """
        Apply `mutation` to the current document in place and write the result
        back, retrying from a fresh read on version conflicts.

        The mutation may run several times, so it must only depend on the
        value it is handed. Anything it raises aborts the operation before a
        write is attempted. If the mutation leaves the document unchanged,
        nothing is written.

        Returns
        -------
        R
            Whatever the (last) application of `mutation` returned.

        Raises
        ------
        VersionConflict
            If every attempt lost the race against another writer.
        StoreUnavailable
            If the store cannot be reached.
        MalformedDocument
            If the stored content cannot be decoded.
        """
        log = log.bind(document=name, note=note)

        for attempt in range(1, self.write_attempts + 1):
            document = await self.read(name=name, codec=codec, log=log)
            before = codec.encode(document.value)

            result = mutation(document.value)

            if codec.encode(document.value) == before:
                await log.adebug("documents.unchanged", attempt=attempt)
                return result

            try:
                await self.write(
                    name=name, codec=codec, document=document, note=note, log=log
                )
                return result
            except VersionConflict:
                await log.awarning(
                    "documents.conflict",
                    attempt=attempt,
                    version=document.version,
                )

        await log.aerror("documents.conflict_retries_exhausted")
        raise VersionConflict(
            f"{name} kept changing; gave up after {self.write_attempts} attempts"
        )
