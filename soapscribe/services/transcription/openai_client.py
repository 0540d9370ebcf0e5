"""OpenAI powered transcription service."""

from __future__ import annotations

from typing import Any, List, Optional

import openai
from openai import AsyncOpenAI

from ...config import Settings, get_settings
from ...data.models import AudioChunk
from ...errors import AuthError, InvalidAudio, ServiceUnavailable
from ...logging import get_logger
from .base import TranscriptionService

LOGGER = get_logger(__name__)


class OpenAITranscriptionService(TranscriptionService):
    name = "openai"

    def __init__(
        self,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.model = model or settings.openai_transcription_model
        if client is not None:
            self.client = client
            return

        client_kwargs = {"max_retries": 0}
        if settings.openai_api_key:
            client_kwargs["api_key"] = settings.openai_api_key
        try:
            self.client = AsyncOpenAI(**client_kwargs)
        except openai.OpenAIError as exc:
            message = str(exc)
            if "api_key" in message.lower():
                raise RuntimeError(
                    "OpenAI API key not configured. Set the OPENAI_API_KEY environment variable "
                    "or SOAPSCRIBE_OPENAI_API_KEY."
                ) from exc
            raise RuntimeError(f"Failed to initialise OpenAI transcription client: {message}") from exc

    async def recognize(self, chunk: AudioChunk) -> str:
        formats = self._candidate_response_formats()
        for index, response_format in enumerate(formats):
            try:
                response = await self.client.audio.transcriptions.create(
                    model=self.model,
                    file=(chunk.filename, chunk.data, chunk.encoding.mime_type),
                    response_format=response_format,
                )
            except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
                raise AuthError(str(exc), exc.status_code) from exc
            except (openai.BadRequestError, openai.UnprocessableEntityError) as exc:
                if self._is_response_format_error(exc) and index < len(formats) - 1:
                    LOGGER.info(
                        "Response format '%s' is not supported by model '%s'; retrying with '%s'",
                        response_format,
                        self.model,
                        formats[index + 1],
                    )
                    continue
                raise InvalidAudio(str(exc), exc.status_code) from exc
            except openai.APIStatusError as exc:
                raise ServiceUnavailable(str(exc), exc.status_code) from exc
            except openai.APIConnectionError as exc:
                raise ServiceUnavailable(str(exc)) from exc
            return self._parse_transcription_response(response)
        return ""

    def _candidate_response_formats(self) -> List[str]:
        return ["json", "text"]

    def _is_response_format_error(self, exc: Exception) -> bool:
        message = str(getattr(exc, "message", None) or exc)
        return "response_format" in message and "unsupported" in message.lower()

    def _parse_transcription_response(self, response: Any) -> str:
        if response is None:
            return ""
        if isinstance(response, str):
            return response
        if isinstance(response, dict):
            return str(response.get("text", "") or "")
        return str(getattr(response, "text", "") or "")

    async def aclose(self) -> None:
        await self.client.close()


__all__ = ["OpenAITranscriptionService"]
