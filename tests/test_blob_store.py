"""Tests for the local blob store and segment path layout."""

import re
import uuid
from datetime import datetime

import pytest

from segscribe.storage.blob_store import LocalBlobStore, build_segment_path, uuid7


def test_build_segment_path_uses_hourly_folders():
    path = build_segment_path("MP3", now=datetime(2025, 8, 1, 14, 5, 0))
    assert re.fullmatch(
        r"speech_segments/2025/08/01/14/speech_segment_[0-9a-f-]{36}\.mp3", path
    )


def test_uuid7_is_version_7_and_time_ordered():
    first = uuid7()
    second = uuid7()
    assert first.version == 7
    assert first.variant == uuid.RFC_4122
    assert first.int >> 80 <= second.int >> 80


@pytest.mark.asyncio
async def test_write_read_delete(blob_store):
    path = "speech_segments/2025/08/01/14/speech_segment_x.wav"
    written = await blob_store.write_bytes(path, b"RIFFdata")

    assert written == 8
    assert await blob_store.exists(path)
    assert await blob_store.read(path) == b"RIFFdata"

    await blob_store.delete(path)
    assert not await blob_store.exists(path)
    # Deleting twice is a no-op
    await blob_store.delete(path)


@pytest.mark.asyncio
async def test_write_is_write_once(blob_store):
    path = "speech_segments/once.mp3"
    await blob_store.write_bytes(path, b"a")
    with pytest.raises(FileExistsError):
        await blob_store.write_bytes(path, b"b")


@pytest.mark.parametrize("bad", ["/etc/passwd", "../escape.mp3", "a/../../escape.mp3", ""])
def test_absolute_path_rejects_escapes(tmp_path, bad):
    store = LocalBlobStore(tmp_path)
    with pytest.raises(ValueError):
        store.absolute_path(bad)


@pytest.mark.asyncio
async def test_exists_is_false_for_invalid_path(blob_store):
    assert not await blob_store.exists("../outside.mp3")
