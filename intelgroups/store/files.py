"""
Base for versioned file stores: a remote place to keep a named blob along
with an opaque version token that must be presented to replace it.
"""

import abc

from pydantic import BaseModel


class StoreUnavailable(Exception):
    pass


class VersionConflict(Exception):
    pass


class BlobNotFound(Exception):
    pass


class Blob(BaseModel):
    content: bytes
    version: str


class VersionedFileStore(abc.ABC):
    """
    The base class for file stores. Downstream must implement:

    - read: get the current content and version of a named blob.
    - write: replace a blob, only if the supplied version is still current.
             Supplying `None` as the version creates a blob that does not yet
             exist.
    """

    @abc.abstractmethod
    async def read(self, name: str) -> Blob:
        """
        Raises
        ------
        BlobNotFound
            If there is no blob with this name.
        StoreUnavailable
            On transport errors or unexpected responses.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def write(
        self, name: str, content: bytes, version: str | None, note: str
    ) -> str:
        """
        Returns the new version token.

        Raises
        ------
        VersionConflict
            If `version` is no longer the current version of the blob.
        StoreUnavailable
            On transport errors or unexpected responses.
        """
        raise NotImplementedError
