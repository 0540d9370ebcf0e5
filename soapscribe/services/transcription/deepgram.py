"""Deepgram-style HTTP speech-to-text backend."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ...config import Settings, get_settings
from ...data.models import AudioChunk
from ...errors import AuthError, InvalidAudio, ServiceUnavailable
from ...logging import get_logger
from .base import TranscriptionService

LOGGER = get_logger(__name__)


def extract_transcript(payload: Any) -> str:
    """Pull the best alternative out of a prerecorded-listen response.

    Falls back to a top-level ``transcript`` key; any other shape is treated
    as "no speech detected".
    """

    if not isinstance(payload, dict):
        return ""
    try:
        return str(payload["results"]["channels"][0]["alternatives"][0]["transcript"] or "")
    except (KeyError, IndexError, TypeError):
        pass
    transcript = payload.get("transcript")
    if isinstance(transcript, str):
        return transcript
    LOGGER.debug("Unexpected transcription payload keys: %s", sorted(payload))
    return ""


class DeepgramTranscriptionService(TranscriptionService):
    name = "deepgram"

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        model: Optional[str] = None,
        language: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.api_key = api_key or settings.deepgram_api_key
        if not self.api_key:
            raise RuntimeError(
                "Deepgram API key not configured. Set SOAPSCRIBE_DEEPGRAM_API_KEY "
                "or run `soapscribe settings set deepgram_api_key <key>`."
            )
        self.url = url or settings.deepgram_url
        self.model = model or settings.deepgram_model
        self.language = language or settings.deepgram_language
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.transcription_timeout_seconds)
        )

    def _params(self, chunk: AudioChunk) -> Dict[str, str]:
        return {
            "model": self.model,
            "smart_format": "true",
            "language": self.language,
            "encoding": chunk.encoding.codec,
            "sample_rate": str(chunk.encoding.sample_rate),
            "channels": str(chunk.encoding.channels),
        }

    async def recognize(self, chunk: AudioChunk) -> str:
        try:
            response = await self._client.post(
                self.url,
                params=self._params(chunk),
                headers={
                    "Authorization": f"Token {self.api_key}",
                    "Content-Type": chunk.encoding.mime_type,
                },
                content=chunk.data,
            )
        except httpx.TimeoutException as exc:
            raise ServiceUnavailable(f"transcription request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ServiceUnavailable(f"transcription request failed: {exc}") from exc

        status = response.status_code
        if status in (401, 403):
            raise AuthError(f"transcription service rejected credentials ({status})", status)
        if 400 <= status < 500 and status not in (408, 429):
            raise InvalidAudio(f"transcription service rejected audio ({status}): {response.text[:200]}", status)
        if status >= 400:
            raise ServiceUnavailable(f"transcription service error ({status})", status)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ServiceUnavailable("transcription service returned a non-JSON body", status) from exc
        return extract_transcript(payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["DeepgramTranscriptionService", "extract_transcript"]
