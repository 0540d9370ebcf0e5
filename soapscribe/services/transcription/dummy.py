"""Scripted transcription service for testing or offline usage."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Sequence

from ...data.models import AudioChunk
from .base import TranscriptionService


class DummyTranscriptionService(TranscriptionService):
    """Return a fixed phrase per chunk index instead of calling a real oracle.

    ``delays`` lets tests make particular chunks resolve late so that
    responses arrive out of order.
    """

    name = "dummy"

    def __init__(
        self,
        script: Optional[Sequence[str]] = None,
        delays: Optional[Dict[int, float]] = None,
    ) -> None:
        self.script = list(script) if script is not None else []
        self.delays = dict(delays or {})
        self.calls: list[int] = []

    async def recognize(self, chunk: AudioChunk) -> str:
        self.calls.append(chunk.sequence_index)
        delay = self.delays.get(chunk.sequence_index, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if not self.script:
            return f"[chunk {chunk.sequence_index}: {chunk.duration:.1f}s of audio]"
        if chunk.sequence_index < len(self.script):
            return self.script[chunk.sequence_index]
        return ""


__all__ = ["DummyTranscriptionService"]
