"""Client for the external speech-to-text HTTP provider.

One call, one result: the client never retries and never touches segment
state. Transport errors (``httpx.HTTPError``) propagate to the caller.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from segscribe.config import settings
from segscribe.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProviderResponse:
    """Outcome of a single transcription request."""

    successful: bool
    status_code: int
    text: Optional[str] = None
    body: Any = None


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class TranscriptionProviderClient:
    """Multipart ``POST`` wrapper around a Whisper-compatible endpoint."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str,
        *,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "TranscriptionProviderClient":
        return cls(
            api_url=settings.transcription_api_url,
            api_key=settings.transcription_api_key,
            model=settings.transcription_model,
            timeout=settings.transcription_timeout_seconds,
        )

    async def transcribe(self, audio: bytes, filename: str) -> ProviderResponse:
        """Send one audio payload for transcription.

        Args:
            audio: Raw audio bytes
            filename: Name reported for the multipart file part

        Returns:
            ProviderResponse with ``text`` set only when the provider returned
            a 2xx JSON body containing a string ``text`` field
        """
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        files = {"file": (filename, audio, content_type)}
        data = {"model": self.model}
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.api_url, headers=headers, data=data, files=files)

        body = _decode_body(response)
        if not response.is_success:
            return ProviderResponse(False, response.status_code, body=body)

        text = body.get("text") if isinstance(body, dict) else None
        if not isinstance(text, str):
            logger.warning(
                "Provider returned %s without a usable transcript", response.status_code
            )
            return ProviderResponse(False, response.status_code, body=body)
        return ProviderResponse(True, response.status_code, text=text, body=body)
