"""File validation utilities for speech segment uploads."""

try:
    import magic

    MAGIC_AVAILABLE = True
except (ImportError, OSError):
    # python-magic or libmagic not available
    MAGIC_AVAILABLE = False

from pathlib import Path
from typing import NamedTuple, Optional

from fastapi import UploadFile

from segscribe.errors import UploadValidationError


# Allowed MIME types for speech segments, mapped to the stored extension
ALLOWED_MIME_TYPES = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/vnd.wave": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/ogg": "ogg",
    "audio/opus": "ogg",
    "application/ogg": "ogg",
    "audio/webm": "webm",
    # libmagic reports WebM containers as video even when audio-only
    "video/webm": "webm",
}

# File extensions to MIME type mapping (fallback)
EXTENSION_MIME_MAP = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
    ".opus": "audio/opus",
    ".webm": "audio/webm",
}

CHUNK_SIZE = 1024 * 1024  # 1MB chunks


class ValidatedUpload(NamedTuple):
    mime_type: str
    extension: str
    size: int


def _base_mime(value: Optional[str]) -> Optional[str]:
    # "audio/webm;codecs=opus" -> "audio/webm"
    if not value:
        return None
    return value.split(";", 1)[0].strip().lower() or None


def _detect_mime(head: bytes) -> Optional[str]:
    if not MAGIC_AVAILABLE:
        return None
    try:
        return magic.from_buffer(head, mime=True)
    except Exception:
        return None


async def validate_audio_upload(file: UploadFile, max_bytes: int) -> ValidatedUpload:
    """
    Validate an uploaded speech segment before anything is stored.

    Detection order: magic bytes, then the filename extension, then the
    declared content type. The first allowed type wins.

    Args:
        file: Uploaded file from FastAPI
        max_bytes: Maximum accepted payload size

    Returns:
        ValidatedUpload with the MIME type, stored extension and size

    Raises:
        UploadValidationError: if the payload is empty, too large or not audio
    """
    head = await file.read(CHUNK_SIZE)
    file_size = len(head)

    if file_size == 0:
        raise UploadValidationError("The audio field must not be empty.")

    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        file_size += len(chunk)
        if file_size > max_bytes:
            raise UploadValidationError(
                f"The audio file may not be greater than {max_bytes // 1024} kilobytes."
            )
    if file_size > max_bytes:
        raise UploadValidationError(
            f"The audio file may not be greater than {max_bytes // 1024} kilobytes."
        )

    # Reset file pointer for the blob write
    await file.seek(0)

    if file.filename and any(char in file.filename for char in ["../", "..\\", "\0"]):
        raise UploadValidationError("Invalid filename.")

    extension = Path(file.filename or "").suffix.lower()
    candidates = [
        _detect_mime(bytes(head[:2048])),
        EXTENSION_MIME_MAP.get(extension),
        _base_mime(file.content_type),
    ]
    for candidate in candidates:
        if candidate in ALLOWED_MIME_TYPES:
            return ValidatedUpload(candidate, ALLOWED_MIME_TYPES[candidate], file_size)

    raise UploadValidationError("The audio field must be a file of type: wav, mp3, ogg, webm.")
