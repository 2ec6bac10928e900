"""
In-memory versioned file store, used for development and testing.
"""

import asyncio
import hashlib

from .files import (
    Blob,
    BlobNotFound,
    StoreUnavailable,
    VersionConflict,
    VersionedFileStore,
)


class MockFileStore(VersionedFileStore):
    """
    Keeps blobs in a dictionary. Versions are content hashes salted with a
    revision counter, so rewriting identical content still changes the
    version, as it does on GitHub.

    `unavailable` can be set to make every call fail, and `conflicts` to make
    that many upcoming writes lose a race.
    """

    blobs: dict[str, Blob]
    writes: list[tuple[str, str]]
    revision: int
    unavailable: bool
    conflicts: int

    def __init__(self, blobs: dict[str, bytes] | None = None):
        self.blobs = {}
        self.writes = []
        self.revision = 0
        self.unavailable = False
        self.conflicts = 0
        self._lock = asyncio.Lock()

        for name, content in (blobs or {}).items():
            self.blobs[name] = Blob(
                content=content, version=self.next_version(content)
            )

    def next_version(self, content: bytes) -> str:
        self.revision += 1
        return hashlib.sha1(str(self.revision).encode() + content).hexdigest()

    async def read(self, name: str) -> Blob:
        if self.unavailable:
            raise StoreUnavailable("Mock store unavailable")

        try:
            return self.blobs[name]
        except KeyError:
            raise BlobNotFound(f"{name} does not exist")

    async def write(
        self, name: str, content: bytes, version: str | None, note: str
    ) -> str:
        async with self._lock:
            if self.unavailable:
                raise StoreUnavailable("Mock store unavailable")

            current = self.blobs.get(name)
            current_version = current.version if current else None

            if self.conflicts > 0:
                self.conflicts -= 1
                # Simulate a concurrent writer landing first.
                if current is not None:
                    self.blobs[name] = Blob(
                        content=current.content,
                        version=self.next_version(current.content),
                    )
                raise VersionConflict(f"{name} changed since version {version}")

            if version != current_version:
                raise VersionConflict(f"{name} changed since version {version}")

            blob = Blob(content=content, version=self.next_version(content))
            self.blobs[name] = blob
            self.writes.append((name, note))

            return blob.version
