"""Local filesystem blob store for uploaded audio segments."""

import asyncio
import os
import secrets
import time
import uuid
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import AsyncIterable, Optional, Union

import aiofiles

from segscribe.logging_config import get_logger

logger = get_logger(__name__)

SEGMENT_PREFIX = "speech_segments"
CHUNK_SIZE = 1024 * 1024  # 1MB chunks


def uuid7() -> uuid.UUID:
    """Generate a time-ordered UUID (RFC 9562 version 7)."""
    unix_ts_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(secrets.token_bytes(10), "big")
    value = (unix_ts_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76  # version
    value |= ((rand >> 62) & 0xFFF) << 64  # rand_a
    value |= 0b10 << 62  # variant
    value |= rand & ((1 << 62) - 1)  # rand_b
    return uuid.UUID(int=value)


def build_segment_path(extension: str, now: Optional[datetime] = None) -> str:
    """Build the relative storage path for a new segment.

    Args:
        extension: File extension without the leading dot
        now: Timestamp used for the hourly folder, defaults to the current UTC time

    Returns:
        Path like ``speech_segments/2025/08/01/14/speech_segment_<uuid7>.mp3``
    """
    now = now or datetime.utcnow()
    extension = extension.lower().lstrip(".")
    filename = f"speech_segment_{uuid7()}.{extension}"
    return f"{SEGMENT_PREFIX}/{now:%Y/%m/%d/%H}/{filename}"


class LocalBlobStore:
    """Write-once blob storage rooted at a local directory.

    Blob paths are relative POSIX paths; anything resolving outside the root
    is rejected.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def absolute_path(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise ValueError(f"Invalid blob path: {path!r}")
        resolved = (self.root / Path(*relative.parts)).resolve()
        if self.root not in resolved.parents:
            raise ValueError(f"Invalid blob path: {path!r}")
        return resolved

    async def write(self, path: str, chunks: AsyncIterable[bytes]) -> int:
        """Stream ``chunks`` to ``path`` and return the number of bytes written."""
        destination = self.absolute_path(path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        size_bytes = 0
        async with aiofiles.open(destination, "xb") as buffer:
            async for chunk in chunks:
                size_bytes += len(chunk)
                await buffer.write(chunk)
        logger.debug("Stored blob %s (%s bytes)", path, size_bytes)
        return size_bytes

    async def write_bytes(self, path: str, data: bytes) -> int:
        async def _single():
            yield data

        return await self.write(path, _single())

    async def exists(self, path: str) -> bool:
        try:
            target = self.absolute_path(path)
        except ValueError:
            return False
        return await asyncio.to_thread(target.is_file)

    async def read(self, path: str) -> bytes:
        async with aiofiles.open(self.absolute_path(path), "rb") as handle:
            return await handle.read()

    async def delete(self, path: str) -> None:
        target = self.absolute_path(path)
        try:
            await asyncio.to_thread(os.remove, target)
        except FileNotFoundError:
            return
        logger.debug("Deleted blob %s", path)
