"""OpenAI-powered SOAP note generation."""

from __future__ import annotations

import json
from typing import AsyncIterator, Optional

import openai
from openai import AsyncOpenAI

from ...config import Settings, get_settings
from ...data.models import RegenerationRequest
from ...errors import GenerationTransportError
from ...logging import get_logger
from .base import NotesService

LOGGER = get_logger(__name__)

SYSTEM_PROMPT = """You are a medical scribe writing SOAP notes from the running transcript of a \
clinical encounter. Use standard clinical documentation conventions and never invent facts: when \
an expected detail is missing, write a bracketed placeholder such as "[BP not mentioned]".

Reply with exactly one JSON object with the keys metadata, subjective, objective, assessment, plan \
and diff.

metadata holds patient_name (string or null), clinician_name (string or null), visit_datetime \
(ISO-8601, UTC), chief_complaint (string or null) and medications_list (array of strings). If the \
request includes metadata entered by the clinician, keep those values unless the transcript \
contradicts them.

If a previous note is provided, return the full updated note rather than a patch, and list in diff \
only the lines that are new or changed compared to it."""


class OpenAINotesService(NotesService):
    name = "openai"

    def __init__(
        self,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.model = model or settings.openai_notes_model
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
            raise RuntimeError(f"Failed to initialise OpenAI notes client: {message}") from exc

    def _messages(self, request: RegenerationRequest) -> list:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(request.payload())},
        ]

    async def stream_note(self, request: RegenerationRequest) -> AsyncIterator[str]:
        LOGGER.info(
            "Requesting note regeneration %s (%d transcript chars)",
            request.token,
            len(request.input_transcript),
        )
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=self._messages(request),
                response_format={"type": "json_object"},
                temperature=0.2,
                stream=True,
            )
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.OpenAIError as exc:
            raise GenerationTransportError(str(exc)) from exc

    async def aclose(self) -> None:
        await self.client.close()


__all__ = ["OpenAINotesService", "SYSTEM_PROMPT"]
