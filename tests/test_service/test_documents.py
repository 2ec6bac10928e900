"""
Tests the read-modify-write protocol over the versioned file store.
"""

import pytest

from intelgroups.core.codec import PREMIUM_CODEC
from intelgroups.store.documents import DocumentStore
from intelgroups.store.files import StoreUnavailable, VersionConflict
from intelgroups.store.mock import MockFileStore

NAME = "premium.js"


def append(user_id):
    def mutation(roster):
        if user_id not in roster:
            roster.append(user_id)
        return len(roster)

    return mutation


@pytest.mark.asyncio
async def test_missing_document_reads_empty(documents, logger):
    document = await documents.read(name=NAME, codec=PREMIUM_CODEC, log=logger)

    assert document.value == []
    assert document.version is None


@pytest.mark.asyncio
async def test_first_write_creates(documents, file_store, logger):
    size = await documents.mutate(
        name=NAME, codec=PREMIUM_CODEC, mutation=append("1"), note="add", log=logger
    )

    assert size == 1
    assert file_store.writes == [(NAME, "add")]

    document = await documents.read(name=NAME, codec=PREMIUM_CODEC, log=logger)
    assert document.value == ["1"]
    assert document.version is not None


@pytest.mark.asyncio
async def test_unchanged_document_is_not_written(documents, file_store, logger):
    await documents.mutate(
        name=NAME, codec=PREMIUM_CODEC, mutation=append("1"), note="add", log=logger
    )
    await documents.mutate(
        name=NAME, codec=PREMIUM_CODEC, mutation=append("1"), note="again", log=logger
    )

    assert file_store.writes == [(NAME, "add")]


@pytest.mark.asyncio
async def test_failed_mutation_is_not_written(documents, file_store, logger):
    await documents.mutate(
        name=NAME, codec=PREMIUM_CODEC, mutation=append("1"), note="add", log=logger
    )
    before = file_store.blobs[NAME]

    def broken(roster):
        roster.append("2")
        raise ValueError("nope")

    with pytest.raises(ValueError):
        await documents.mutate(
            name=NAME, codec=PREMIUM_CODEC, mutation=broken, note="bad", log=logger
        )

    assert file_store.blobs[NAME] == before


@pytest.mark.asyncio
async def test_conflict_is_retried(documents, file_store, logger):
    await documents.mutate(
        name=NAME, codec=PREMIUM_CODEC, mutation=append("1"), note="add", log=logger
    )

    file_store.conflicts = 2

    size = await documents.mutate(
        name=NAME, codec=PREMIUM_CODEC, mutation=append("2"), note="add", log=logger
    )

    assert size == 2
    document = await documents.read(name=NAME, codec=PREMIUM_CODEC, log=logger)
    assert document.value == ["1", "2"]


@pytest.mark.asyncio
async def test_conflict_retries_are_bounded(file_store, logger):
    documents = DocumentStore(files=file_store, write_attempts=2)
    file_store.conflicts = 2

    with pytest.raises(VersionConflict):
        await documents.mutate(
            name=NAME, codec=PREMIUM_CODEC, mutation=append("1"), note="x", log=logger
        )

    assert file_store.writes == []


@pytest.mark.asyncio
async def test_concurrent_writer_is_not_lost(file_store, logger):
    """
    A writer that read an older version must re-apply its change on top of
    the newer content rather than overwrite it.
    """
    documents = DocumentStore(files=file_store)
    await documents.mutate(
        name=NAME, codec=PREMIUM_CODEC, mutation=append("1"), note="a", log=logger
    )

    stale = await documents.read(name=NAME, codec=PREMIUM_CODEC, log=logger)

    await documents.mutate(
        name=NAME, codec=PREMIUM_CODEC, mutation=append("2"), note="b", log=logger
    )

    stale.value.append("3")

    with pytest.raises(VersionConflict):
        await documents.write(
            name=NAME, codec=PREMIUM_CODEC, document=stale, note="c", log=logger
        )

    await documents.mutate(
        name=NAME, codec=PREMIUM_CODEC, mutation=append("3"), note="c", log=logger
    )

    document = await documents.read(name=NAME, codec=PREMIUM_CODEC, log=logger)
    assert document.value == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_store_unavailable(file_store, documents, logger):
    file_store.unavailable = True

    with pytest.raises(StoreUnavailable):
        await documents.read(name=NAME, codec=PREMIUM_CODEC, log=logger)

    with pytest.raises(StoreUnavailable):
        await documents.mutate(
            name=NAME, codec=PREMIUM_CODEC, mutation=append("1"), note="x", log=logger
        )


@pytest.mark.asyncio
async def test_seeded_store(logger):
    file_store = MockFileStore(blobs={NAME: b'window.PREMIUM_USERS = ["7"]'})
    documents = DocumentStore(files=file_store)

    document = await documents.read(name=NAME, codec=PREMIUM_CODEC, log=logger)
    assert document.value == ["7"]
