"""Transcription service abstractions."""

from __future__ import annotations

import abc

from ...data.models import AudioChunk


class TranscriptionService(abc.ABC):
    """Convert one audio chunk into text.

    Implementations perform exactly one outbound call per chunk and never
    retry. They return ``""`` when no speech was detected and raise a
    :class:`~soapscribe.errors.TranscriptionError` subclass on failure.
    """

    name = "transcription"

    @abc.abstractmethod
    async def recognize(self, chunk: AudioChunk) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network clients held by the service."""


__all__ = ["TranscriptionService"]
